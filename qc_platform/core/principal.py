"""Acting identity passed explicitly to every mutating service call."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """Who is performing an action, and in which role.

    The core never resolves a "current user" by itself; blueprints build a
    Principal from the request and hand it down.
    """

    user_id: str
    name: str
    role: str

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "name": self.name, "role": self.role}
