"""
Telemetry Module
================

Observability for the back-office service.

Components:
- sentry.py: Error tracking for the sync, push-back and backfill flows

Environment Variables:
- SENTRY_DSN: Sentry project DSN (error tracking disabled when unset)
- ENVIRONMENT: Environment name (production, staging, development)

Usage:
    from backoffice.telemetry import init_observability, capture_exception

    # Initialize on app / worker startup
    init_observability()
"""

from backoffice.telemetry.sentry import (
    init_sentry,
    capture_exception,
    capture_message,
)


def init_observability() -> dict:
    """Initialize observability tools.

    Returns:
        Dict with status of each tool initialization, e.g. {"sentry": False}.
    """
    return {
        "sentry": init_sentry(),
    }


__all__ = [
    "init_observability",
    "init_sentry",
    "capture_exception",
    "capture_message",
]
