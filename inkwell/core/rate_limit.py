"""
In-memory login throttle.
Protects the login endpoint against brute force and credential stuffing.
"""
import time
from collections import defaultdict
from typing import Dict, List, Tuple

from fastapi import Request


class RateLimiter:
    """
    Sliding-window limiter keyed by client address.
    Process-local; a multi-worker deployment needs a shared store instead.
    """

    def __init__(self, lockout_threshold: int = 5, lockout_seconds: int = 300):
        self.lockout_threshold = lockout_threshold
        self.lockout_seconds = lockout_seconds
        # {ip: [timestamp, ...]}
        self._requests: Dict[str, List[float]] = defaultdict(list)
        # {ip: lockout_until_timestamp}
        self._lockouts: Dict[str, float] = {}
        # {ip: failed_attempts}
        self._failed_attempts: Dict[str, int] = defaultdict(int)

    def _cleanup_old_requests(self, ip: str, window_seconds: int) -> None:
        cutoff = time.time() - window_seconds
        self._requests[ip] = [ts for ts in self._requests[ip] if ts > cutoff]

    def is_rate_limited(self, ip: str, max_requests: int = 10, window_seconds: int = 60) -> Tuple[bool, int]:
        """
        Check if IP is rate limited.
        Returns (is_limited, retry_after_seconds)
        """
        now = time.time()

        if ip in self._lockouts:
            lockout_until = self._lockouts[ip]
            if now < lockout_until:
                return True, max(1, int(lockout_until - now))
            # Lockout expired
            del self._lockouts[ip]
            self._failed_attempts[ip] = 0

        self._cleanup_old_requests(ip, window_seconds)

        if len(self._requests[ip]) >= max_requests:
            return True, window_seconds

        return False, 0

    def record_request(self, ip: str) -> None:
        self._requests[ip].append(time.time())

    def record_failed_login(self, ip: str) -> Tuple[bool, int]:
        """
        Record a failed login attempt.
        Returns (is_locked, lockout_seconds_or_remaining_attempts).
        """
        self._failed_attempts[ip] += 1

        if self._failed_attempts[ip] >= self.lockout_threshold:
            self._lockouts[ip] = time.time() + self.lockout_seconds
            return True, self.lockout_seconds

        return False, self.lockout_threshold - self._failed_attempts[ip]

    def record_successful_login(self, ip: str) -> None:
        self._failed_attempts.pop(ip, None)
        self._lockouts.pop(ip, None)

    def clear(self) -> None:
        self._requests.clear()
        self._lockouts.clear()
        self._failed_attempts.clear()


def get_client_ip(request: Request) -> str:
    """Extract client IP, handling proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # First IP in the list is the client
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"
