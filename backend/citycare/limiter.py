"""Rate limiter shared by the application and the routers."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from citycare.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def submission_limit() -> str:
    """Per-client limit for issue submissions."""
    return f"{get_settings().rate_limit_per_minute}/minute"
