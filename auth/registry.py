"""
auth/registry.py -- Process-local access-token registry and blacklist.

AccessTokenRegistry keeps two maps behind one threading.Lock:
  _current    owner_id -> IssuedToken        (the single live access token)
  _blacklist  owner_id -> {token: BlacklistedToken}

Route handlers run in FastAPI's threadpool, so a login and a sign-out for the
same owner can arrive concurrently. Every read-modify-write happens under the
lock; nothing inside the lock does I/O.

Restart contract: both maps live only in process memory and start empty.
Access tokens are short-lived, so after a restart a token revoked before the
restart is accepted again until its natural expiry. The durable token table
(auth/store.py) is the source of truth for every other kind; this registry is
never consulted for them.

Blacklist lifetime: an entry lives until max(token exp, now + grace). Purging
it any earlier would let a revoked token validate again.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone

from auth.models import BlacklistedToken, IssuedToken

logger = logging.getLogger("authprovider.registry")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccessTokenRegistry:
    def __init__(self, grace: timedelta = timedelta(minutes=30)) -> None:
        self._grace = grace
        self._lock = threading.Lock()
        self._current: dict[str, IssuedToken] = {}
        self._blacklist: dict[str, dict[str, BlacklistedToken]] = {}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def replace(self, owner_id: str, issued: IssuedToken, now: datetime | None = None) -> IssuedToken | None:
        """Register issued as the owner's live token, blacklisting the previous one.

        Returns the token that was superseded, if any.
        """
        now = now or _utcnow()
        with self._lock:
            previous = self._current.get(owner_id)
            if previous is not None and previous.token != issued.token:
                self._blacklist_locked(owner_id, previous.token, previous.expires_at, now)
            self._current[owner_id] = issued
        return previous

    def revoke(
        self,
        owner_id: str,
        token: str | None = None,
        token_expires_at: datetime | None = None,
        now: datetime | None = None,
    ) -> int:
        """Blacklist the owner's live token and, if given, an explicit token.

        The explicit token covers a client presenting a token the registry no
        longer tracks as current (for example one issued before a restart).
        Returns the number of tokens newly blacklisted.
        """
        now = now or _utcnow()
        added = 0
        with self._lock:
            current = self._current.pop(owner_id, None)
            if current is not None:
                added += self._blacklist_locked(owner_id, current.token, current.expires_at, now)
            if token and (current is None or token != current.token):
                added += self._blacklist_locked(owner_id, token, token_expires_at, now)
        return added

    def _blacklist_locked(self, owner_id: str, token: str, expires_at: datetime | None, now: datetime) -> int:
        floor = now + self._grace
        expiration = max(expires_at, floor) if expires_at is not None else floor
        entries = self._blacklist.setdefault(owner_id, {})
        existing = entries.get(token)
        if existing is not None and existing.expiration_time >= expiration:
            return 0
        entries[token] = BlacklistedToken(token=token, expiration_time=expiration)
        return 0 if existing is not None else 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current(self, owner_id: str) -> IssuedToken | None:
        with self._lock:
            return self._current.get(owner_id)

    def is_blacklisted(self, owner_id: str, token: str) -> bool:
        with self._lock:
            return token in self._blacklist.get(owner_id, {})

    def blacklist_size(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._blacklist.values())

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self, now: datetime | None = None) -> int:
        """Drop blacklist entries whose expiration_time has passed.

        Current-token entries past their own expiry are dropped as well, so
        owners who never sign out do not accumulate. Called hourly from the
        API lifespan task. Returns the number of blacklist entries removed.
        """
        now = now or _utcnow()
        removed = 0
        with self._lock:
            for owner_id in [o for o, issued in self._current.items() if issued.expires_at < now]:
                del self._current[owner_id]
            for owner_id in list(self._blacklist):
                entries = self._blacklist[owner_id]
                for token in [t for t, entry in entries.items() if entry.expiration_time < now]:
                    del entries[token]
                    removed += 1
                if not entries:
                    del self._blacklist[owner_id]
        if removed:
            logger.info("Purged %d expired blacklist entries", removed)
        return removed
