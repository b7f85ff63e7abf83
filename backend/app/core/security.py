"""
Security module
Rate limiting for redemption and admin authentication
"""
from fastapi import Request, HTTPException, status
from dataclasses import dataclass
from collections import defaultdict
import time
import logging

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """
    Per-key sliding window limiter

    Keeps attempts in memory, so it only covers a single process. Swap the
    instance on app.state for a shared store when running several workers.
    """

    def __init__(self, window: int, max_attempts: int, clock=time.monotonic):
        self.window = window
        self.max_attempts = max_attempts
        self._clock = clock
        # { key: [timestamp1, timestamp2, ...] }
        self._records = defaultdict(list)

    def hit(self, key: str) -> bool:
        """Record an attempt; return False if the key is over its limit"""
        now = self._clock()
        history = self._records[key]

        # Drop attempts that fell out of the window
        while history and history[0] <= now - self.window:
            history.pop(0)

        if len(history) >= self.max_attempts:
            return False

        history.append(now)
        return True


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.rate_limiter


async def verify_rate_limiter(request: Request):
    """
    Rate limit dependency
    Guards code redemption against brute force
    """
    limiter = get_rate_limiter(request)
    client_ip = request.client.host if request.client else "unknown"

    if not limiter.hit(client_ip):
        logger.warning(f"Security warning: IP {client_ip} hit the redemption rate limit")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many attempts, please wait {limiter.window} seconds and try again"
        )
    return True


# --- Admin authentication ---
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi import Depends
import secrets
from app.core.config import get_settings

security = HTTPBasic()


@dataclass(frozen=True)
class AdminIdentity:
    """Verified admin, trusted verbatim as the issuer of a sale"""
    admin_id: str
    role: str


def get_current_admin(credentials: HTTPBasicCredentials = Depends(security)) -> AdminIdentity:
    """
    Admin auth dependency
    Uses HTTP Basic Auth
    """
    settings = get_settings()

    # compare_digest avoids timing attacks
    is_username_correct = secrets.compare_digest(
        credentials.username, settings.admin_username
    )
    is_password_correct = secrets.compare_digest(
        credentials.password, settings.admin_password
    )

    if not (is_username_correct and is_password_correct):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
    return AdminIdentity(admin_id=settings.admin_id, role=settings.admin_role)
