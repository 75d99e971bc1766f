"""
tests/test_registry.py -- Unit tests for AccessTokenRegistry.

Coverage:
  - replace() blacklists the superseded token, keeps one current per owner
  - revoke() blacklists current and presented tokens
  - Blacklist lifetime is max(token exp, now + grace)
  - purge_expired() removes only entries past their expiration
  - purge_expired() also drops current tokens past their expiry
  - Concurrent replace() calls for one owner leave exactly one live token
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from auth.models import IssuedToken, TokenKind
from auth.registry import AccessTokenRegistry

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _issued(token: str, minutes: int = 60) -> IssuedToken:
    return IssuedToken(token=token, token_id=token, kind=TokenKind.ACCESS, expires_at=NOW + timedelta(minutes=minutes))


class TestReplace:
    def test_first_issue_has_no_previous(self) -> None:
        registry = AccessTokenRegistry()
        assert registry.replace("o1", _issued("t1"), now=NOW) is None
        assert registry.current("o1").token == "t1"
        assert registry.blacklist_size() == 0

    def test_replace_blacklists_previous(self) -> None:
        registry = AccessTokenRegistry()
        registry.replace("o1", _issued("t1"), now=NOW)
        previous = registry.replace("o1", _issued("t2"), now=NOW)

        assert previous.token == "t1"
        assert registry.is_blacklisted("o1", "t1")
        assert not registry.is_blacklisted("o1", "t2")
        assert registry.current("o1").token == "t2"

    def test_owners_are_independent(self) -> None:
        registry = AccessTokenRegistry()
        registry.replace("o1", _issued("t1"), now=NOW)
        registry.replace("o2", _issued("t2"), now=NOW)
        assert registry.current("o1").token == "t1"
        assert not registry.is_blacklisted("o2", "t1")


class TestRevoke:
    def test_revoke_current(self) -> None:
        registry = AccessTokenRegistry()
        registry.replace("o1", _issued("t1"), now=NOW)
        assert registry.revoke("o1", now=NOW) == 1
        assert registry.current("o1") is None
        assert registry.is_blacklisted("o1", "t1")

    def test_revoke_presented_token_not_tracked(self) -> None:
        registry = AccessTokenRegistry()
        assert registry.revoke("o1", "stale", NOW + timedelta(minutes=10), now=NOW) == 1
        assert registry.is_blacklisted("o1", "stale")

    def test_revoke_twice_counts_once(self) -> None:
        registry = AccessTokenRegistry()
        registry.revoke("o1", "t1", NOW + timedelta(minutes=10), now=NOW)
        assert registry.revoke("o1", "t1", NOW + timedelta(minutes=10), now=NOW) == 0


class TestBlacklistLifetime:
    def test_lifetime_covers_natural_expiry(self) -> None:
        """A token expiring after the grace window stays blacklisted until it expires."""
        registry = AccessTokenRegistry(grace=timedelta(minutes=30))
        registry.replace("o1", _issued("t1", minutes=60), now=NOW)
        registry.replace("o1", _issued("t2", minutes=60), now=NOW)

        assert registry.purge_expired(now=NOW + timedelta(minutes=45)) == 0
        assert registry.is_blacklisted("o1", "t1")
        assert registry.purge_expired(now=NOW + timedelta(minutes=61)) == 1
        assert not registry.is_blacklisted("o1", "t1")

    def test_lifetime_at_least_grace(self) -> None:
        """Unknown expiry falls back to now + grace."""
        registry = AccessTokenRegistry(grace=timedelta(minutes=30))
        registry.revoke("o1", "t1", None, now=NOW)

        assert registry.purge_expired(now=NOW + timedelta(minutes=29)) == 0
        assert registry.purge_expired(now=NOW + timedelta(minutes=31)) == 1
        assert registry.blacklist_size() == 0


class TestPurgeCurrent:
    def test_purge_drops_expired_current(self) -> None:
        """Owners who never sign out do not keep an entry past their token expiry."""
        registry = AccessTokenRegistry()
        registry.replace("o1", _issued("t1", minutes=60), now=NOW)
        registry.replace("o2", _issued("t2", minutes=120), now=NOW)

        assert registry.purge_expired(now=NOW + timedelta(minutes=59)) == 0
        assert registry.current("o1").token == "t1"

        assert registry.purge_expired(now=NOW + timedelta(minutes=61)) == 0
        assert registry.current("o1") is None
        assert registry.current("o2").token == "t2"

    def test_purge_keeps_token_at_exact_expiry(self) -> None:
        registry = AccessTokenRegistry()
        registry.replace("o1", _issued("t1", minutes=60), now=NOW)

        registry.purge_expired(now=NOW + timedelta(minutes=60))
        assert registry.current("o1") is not None


class TestConcurrency:
    def test_parallel_replace_single_current(self) -> None:
        """Many threads reissuing for one owner: one current token, every other blacklisted."""
        registry = AccessTokenRegistry()
        tokens = [f"t{i}" for i in range(200)]
        barrier = threading.Barrier(8)

        def worker(chunk: list[str]) -> None:
            barrier.wait()
            for token in chunk:
                registry.replace("o1", _issued(token), now=NOW)

        threads = [threading.Thread(target=worker, args=(tokens[i::8],)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        current = registry.current("o1").token
        assert not registry.is_blacklisted("o1", current)
        assert registry.blacklist_size() == len(tokens) - 1
