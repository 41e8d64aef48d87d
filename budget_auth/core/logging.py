# budget_auth/core/logging.py
import logging
import sys
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"

audit_logger = logging.getLogger("budget_auth.audit")
security_logger = logging.getLogger("budget_auth.security")


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger("budget_auth")
    root.setLevel(level.upper())
    if not any(getattr(h, "_budget_auth", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._budget_auth = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def _fields(details: dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in details.items() if v is not None)


def log_auth_event(event: str, user_id: Optional[int], success: bool, **details: Any) -> None:
    """Security audit trail: logins, issuance, refresh, logout."""
    audit_logger.info(
        "AUTH_EVENT event=%s user_id=%s success=%s %s",
        event,
        user_id,
        success,
        _fields(details),
        extra={"auth_event": event, "user_id": user_id, "success": success},
    )


def log_suspicious_activity(category: str, user_id: Optional[int] = None, **details: Any) -> None:
    """Potentially adversarial input (bad signatures, reused refresh tokens, ...)."""
    security_logger.error(
        "SECURITY_ALERT category=%s user_id=%s %s",
        category,
        user_id,
        _fields(details),
        extra={"security_category": category, "user_id": user_id, "alert": True},
    )
