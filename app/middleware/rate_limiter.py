"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEMANDE_API_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Demande API:       120/minute
        - Transition route:  TRANSITION_RATE_LIMIT (default 30/minute)
        - Health check:      exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    transition_limit = app.config.get("TRANSITION_RATE_LIMIT", "30/minute")

    view = app.view_functions.get("demande.transition_demande")
    if view:
        app.view_functions["demande.transition_demande"] = limiter.limit(transition_limit)(view)

    bp = app.blueprints.get("demande")
    if bp:
        limiter.limit(DEMANDE_API_LIMIT)(bp)

    # Health check: exempt from rate limiting
    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — demande API: %s, transitions: %s",
        DEMANDE_API_LIMIT, transition_limit,
    )
