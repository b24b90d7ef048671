"""In-memory stores for OAuth sessions and access tokens.

These stores are shared between the OAuth endpoints and the bearer
middleware. Both maps are keyed by the secret itself, so they only work
for a single-process deployment; running several workers needs a shared
external store behind the same put/get/delete interface.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

AUTHORIZATION_CODE_TTL_SECONDS = 10 * 60
ACCESS_TOKEN_TTL_SECONDS = 60 * 60
SWEEP_INTERVAL_SECONDS = 60


@dataclass(frozen=True)
class AuthorizationSession:
    """Pending authorization between /authorize and /token."""

    code_challenge: str
    code_challenge_method: str
    redirect_uri: str
    client_id: str
    scope: str
    state: str
    resource: str
    created_at: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > AUTHORIZATION_CODE_TTL_SECONDS


@dataclass(frozen=True)
class AccessToken:
    """Issued bearer token."""

    token: str
    client_id: str
    scope: str
    resource: str
    expires_at: float
    created_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class KeyedStore:
    """Thread-safe dict keyed by an opaque secret.

    ``delete`` is idempotent, so the sweeper and request handlers can both
    remove the same key without coordinating. ``pop`` is the atomic
    take-and-delete used when a secret must be spent exactly once.
    """

    def __init__(self):
        self._items: dict[str, Any] = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._items[key] = value

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._items.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def pop(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._items.pop(key, None)

    def evict(self, predicate: Callable[[Any], bool]) -> int:
        """Remove every value matching ``predicate``. Returns the count."""
        with self._lock:
            doomed = [key for key, value in self._items.items() if predicate(value)]
            for key in doomed:
                del self._items[key]
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._items


class OAuthStores:
    """Authorization codes (code -> AuthorizationSession) and access tokens
    (token -> AccessToken)."""

    def __init__(self):
        self.authorization_codes = KeyedStore()
        self.access_tokens = KeyedStore()

    def sweep(self, now: float) -> tuple[int, int]:
        codes_removed = self.authorization_codes.evict(lambda session: session.is_expired(now))
        tokens_removed = self.access_tokens.evict(lambda token: token.is_expired(now))
        return codes_removed, tokens_removed


async def run_sweeper(
    stores: OAuthStores,
    interval: float = SWEEP_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.time,
) -> None:
    """Evict expired codes and tokens every ``interval`` seconds until cancelled.

    Housekeeping only: lookups re-check expiry themselves.
    """
    while True:
        await asyncio.sleep(interval)
        codes_removed, tokens_removed = stores.sweep(clock())
        if codes_removed or tokens_removed:
            logger.info(
                f"[SWEEP] Removed {codes_removed} authorization code(s), "
                f"{tokens_removed} access token(s)"
            )
