"""
Inspection Lifecycle State Machine.

States:
    DRAFT (initial) → SUBMITTED → APPROVED | REJECTED | NEEDS_REWORK

    APPROVED and REJECTED are terminal.  NEEDS_REWORK is not: it reopens the
    instance for editing and behaves exactly as DRAFT (it can be edited,
    submitted and signed again).

5 actions:
    submit, sign          DRAFT | NEEDS_REWORK → SUBMITTED
    approve               SUBMITTED → APPROVED
    reject                SUBMITTED → REJECTED
    request_rework        SUBMITTED → NEEDS_REWORK

Item / comment / attachment edits are only legal in the editable states
(DRAFT, NEEDS_REWORK).  Any action against a terminal instance raises
InstanceTerminal before the transition table is consulted.

Signing and review (LifecycleService):
    sign      inspector's own signature; same mandatory gate as submit,
              records an APPROVED Signature and moves to SUBMITTED
    approve   reviewer signature (APPROVED) → APPROVED
    reject    reviewer signature (REJECTED) → REJECTED, or NEEDS_REWORK
              when ``rework=True``; comments required

Usage:
    from qc_platform.services.inspection_lifecycle import ensure_transition

    new_status = ensure_transition(instance, "approve")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from qc_platform.core.exceptions import (
    ConcurrencyConflict,
    EmptySignature,
    InstanceTerminal,
    InvalidTransition,
    MissingComments,
    MissingMandatoryItems,
    NotFoundError,
)
from qc_platform.models.inspection import EDITABLE_STATUSES, TERMINAL_STATUSES, Signature
from qc_platform.services.scoring import compute_score
from qc_platform.utils.helpers import natural_code_key

logger = logging.getLogger(__name__)


INSPECTION_TRANSITIONS = {
    "submit":         {"from": ["DRAFT", "NEEDS_REWORK"], "to": "SUBMITTED"},
    "sign":           {"from": ["DRAFT", "NEEDS_REWORK"], "to": "SUBMITTED"},
    "approve":        {"from": ["SUBMITTED"], "to": "APPROVED"},
    "reject":         {"from": ["SUBMITTED"], "to": "REJECTED"},
    "request_rework": {"from": ["SUBMITTED"], "to": "NEEDS_REWORK"},
}


def validate_transition(status: str, action: str) -> dict:
    """Validate whether an action is valid for the current status."""
    rule = INSPECTION_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": status, "to": None,
                "reason": f"Unknown action: {action}"}

    if status not in rule["from"]:
        return {"valid": False, "from": status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{status}'"}

    return {"valid": True, "from": status, "to": rule["to"], "reason": None}


def allowed_actions(status: str) -> list[str]:
    """Actions legal from ``status``, in table order."""
    if status in TERMINAL_STATUSES:
        return []
    return [a for a, rule in INSPECTION_TRANSITIONS.items() if status in rule["from"]]


def ensure_not_terminal(instance) -> None:
    if instance.status in TERMINAL_STATUSES:
        raise InstanceTerminal(instance.id, instance.status)


def ensure_editable(instance, action: str = "edit") -> None:
    """Guard for item results, comments and attachments."""
    ensure_not_terminal(instance)
    if instance.status not in EDITABLE_STATUSES:
        raise InvalidTransition(
            action, instance.status,
            reason="inspection is under review; request rework to edit it again",
        )


def ensure_transition(instance, action: str) -> str:
    """Raise unless ``action`` is legal for ``instance``; return the target status."""
    ensure_not_terminal(instance)
    validation = validate_transition(instance.status, action)
    if not validation["valid"]:
        raise InvalidTransition(action, instance.status, validation["reason"])
    return validation["to"]


# ── Gates shared by submit and sign ─────────────────────────────────────────

def pending_mandatory_codes(instance) -> list[str]:
    """Codes of mandatory items still PENDING, in natural code order."""
    codes = [i.code for i in instance.items if i.is_mandatory and i.status == "PENDING"]
    return sorted(codes, key=natural_code_key)


def ensure_mandatory_resolved(instance) -> None:
    codes = pending_mandatory_codes(instance)
    if codes:
        raise MissingMandatoryItems(codes)


def apply_submission(instance, now) -> None:
    """Stamp the final score and submission time; status is set by the caller."""
    instance.score = compute_score(instance.items)
    instance.submitted_at = now
    instance.updated_at = now


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Signing and review decisions
# ═════════════════════════════════════════════════════════════════════════════

class LifecycleService:
    """sign / approve / reject against one instance repository.

    Every call writes the Signature row and the status change in one commit.
    """

    def __init__(self, instances, clock=None):
        self.instances = instances
        self._now = clock or _utcnow

    def _load(self, instance_id: int):
        instance = self.instances.get(instance_id)
        if instance is None:
            raise NotFoundError("InspectionInstance", instance_id)
        return instance

    def _check_version(self, instance, expected_version):
        if expected_version is not None and expected_version != instance.version:
            raise ConcurrencyConflict(
                "InspectionInstance", instance.id,
                expected=expected_version, actual=instance.version,
            )

    def _record(self, instance, principal, status: str, image=None, comments=None):
        signature = Signature(
            signer_id=principal.user_id,
            signer_name=principal.name,
            signer_role=principal.role,
            status=status,
            signature_image=image,
            comments=comments,
            signed_at=self._now(),
        )
        instance.signatures.append(signature)
        return signature

    def _commit(self, instance, previous: str, action: str, principal) -> None:
        instance_id = instance.id
        try:
            self.instances.commit()
        except ConcurrencyConflict as exc:
            raise ConcurrencyConflict("InspectionInstance", instance_id) from exc
        except Exception:
            self.instances.rollback()
            raise
        logger.info(
            "Inspection %s", action,
            extra={"instance_id": instance_id, "from_status": previous,
                   "to_status": instance.status, "user_id": principal.user_id,
                   "role": principal.role},
        )

    def sign(self, instance_id: int, principal, signature_image: str | None,
             expected_version: int | None = None):
        """Inspector signature: submit preconditions + self-approving Signature → SUBMITTED."""
        instance = self._load(instance_id)
        target = ensure_transition(instance, "sign")
        self._check_version(instance, expected_version)
        if not (signature_image or "").strip():
            raise EmptySignature()
        ensure_mandatory_resolved(instance)

        previous = instance.status
        now = self._now()
        self._record(instance, principal, "APPROVED", image=signature_image)
        apply_submission(instance, now)
        instance.status = target
        self._commit(instance, previous, "signed", principal)
        return instance

    def approve(self, instance_id: int, principal, comments: str | None = None,
                signature_image: str | None = None, expected_version: int | None = None):
        instance = self._load(instance_id)
        target = ensure_transition(instance, "approve")
        self._check_version(instance, expected_version)

        previous = instance.status
        self._record(instance, principal, "APPROVED", image=signature_image,
                     comments=(comments or "").strip() or None)
        instance.status = target
        instance.updated_at = self._now()
        self._commit(instance, previous, "approved", principal)
        return instance

    def reject(self, instance_id: int, principal, comments: str | None,
               rework: bool = False, signature_image: str | None = None,
               expected_version: int | None = None):
        """REJECTED (terminal) or, with ``rework``, NEEDS_REWORK (reopened).

        Comments are mandatory either way.
        """
        action = "request_rework" if rework else "reject"
        instance = self._load(instance_id)
        target = ensure_transition(instance, action)
        self._check_version(instance, expected_version)
        comments = (comments or "").strip()
        if not comments:
            raise MissingComments(action)

        previous = instance.status
        self._record(instance, principal, "REJECTED", image=signature_image, comments=comments)
        instance.status = target
        instance.updated_at = self._now()
        self._commit(instance, previous, "sent back for rework" if rework else "rejected", principal)
        return instance

    def request_rework(self, instance_id: int, principal, comments: str | None, **kwargs):
        return self.reject(instance_id, principal, comments, rework=True, **kwargs)
