"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter.  The Limiter instance is
created in qc_platform/__init__.py with no default limits; this module
applies granular limits per route category.

Usage:
    from qc_platform.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Report / analysis endpoints:  REPORT_RATE_LIMIT (layout + provider calls are expensive)
        - Inspection / catalog writes:  60/minute
        - Health check:                 exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("report")
    if bp:
        limiter.limit(app.config.get("REPORT_RATE_LIMIT", "30/minute"))(bp)

    for bp_name in ("inspection", "catalog"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute")(bp)

    app.logger.info(
        "Rate limiter configured (report: %s, write: 60/min)",
        app.config.get("REPORT_RATE_LIMIT", "30/minute"),
    )
