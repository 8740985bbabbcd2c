import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import CeremonyVerificationError, SessionNotFound
from app.db.models.challenge import ChallengeType, PendingCeremony
from app.db.models.user import Credential


def make_pending(handle=b"alice", challenge=b"c" * 32, expires_in=None):
    expires_at = None
    if expires_in is not None:
        expires_at = datetime.now(timezone.utc) + expires_in
    return PendingCeremony(
        challenge=challenge,
        challenge_type=ChallengeType.REGISTRATION,
        user_handle=handle,
        expires_at=expires_at,
    )


class TestUserStore:
    def test_get_or_create_returns_same_instance(self, user_store):
        first = user_store.get_or_create("alice")
        second = user_store.get_or_create("alice")
        assert first is second
        assert len(user_store) == 1

    def test_new_user_handle_is_username_bytes(self, user_store):
        user = user_store.get_or_create("alice")
        assert user.user_id == b"alice"
        assert user.name == "alice"
        assert user.display_name == "alice"
        assert user.credentials == []

    def test_get_does_not_create(self, user_store):
        assert user_store.get("bob") is None
        assert "bob" not in user_store

    def test_add_credential_appends(self, user_store):
        user = user_store.get_or_create("alice")
        user_store.add_credential(user, Credential(credential_id=b"one", public_key=b"pk1"))
        user_store.add_credential(user, Credential(credential_id=b"two", public_key=b"pk2"))
        assert user.credential_ids() == [b"one", b"two"]
        assert user.find_credential(b"two").public_key == b"pk2"
        assert user.find_credential(b"three") is None

    def test_add_credential_rejects_duplicate_id(self, user_store):
        user = user_store.get_or_create("alice")
        user_store.add_credential(user, Credential(credential_id=b"one", public_key=b"pk1"))
        with pytest.raises(CeremonyVerificationError):
            user_store.add_credential(user, Credential(credential_id=b"one", public_key=b"pk2"))
        assert user.credential_ids() == [b"one"]
        assert user.find_credential(b"one").public_key == b"pk1"

    def test_concurrent_first_reference_creates_one_user(self, user_store):
        barrier = threading.Barrier(8)
        seen = []

        def worker():
            barrier.wait()
            seen.append(user_store.get_or_create("carol"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(seen) == 8
        assert all(user is seen[0] for user in seen)


class TestPendingCeremonyStore:
    def test_take_without_put_raises(self, ceremony_store):
        with pytest.raises(SessionNotFound):
            ceremony_store.take_and_clear(b"alice")

    def test_take_clears_entry(self, ceremony_store):
        pending = make_pending()
        ceremony_store.put(b"alice", pending)
        assert ceremony_store.take_and_clear(b"alice") is pending
        assert len(ceremony_store) == 0
        with pytest.raises(SessionNotFound):
            ceremony_store.take_and_clear(b"alice")

    def test_put_overwrites(self, ceremony_store):
        ceremony_store.put(b"alice", make_pending(challenge=b"first"))
        ceremony_store.put(b"alice", make_pending(challenge=b"second"))
        assert len(ceremony_store) == 1
        assert ceremony_store.take_and_clear(b"alice").challenge == b"second"

    def test_entries_are_per_handle(self, ceremony_store):
        ceremony_store.put(b"alice", make_pending(b"alice"))
        ceremony_store.put(b"bob", make_pending(b"bob"))
        assert ceremony_store.take_and_clear(b"bob").user_handle == b"bob"
        assert ceremony_store.peek(b"alice").user_handle == b"alice"

    def test_concurrent_take_has_single_winner(self, ceremony_store):
        ceremony_store.put(b"alice", make_pending())
        barrier = threading.Barrier(10)
        results = []

        def worker():
            barrier.wait()
            try:
                ceremony_store.take_and_clear(b"alice")
                results.append("won")
            except SessionNotFound:
                results.append("missed")

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("won") == 1
        assert results.count("missed") == 9

    def test_purge_expired(self, ceremony_store):
        ceremony_store.put(b"old", make_pending(b"old", expires_in=timedelta(seconds=-1)))
        ceremony_store.put(b"fresh", make_pending(b"fresh", expires_in=timedelta(minutes=5)))
        ceremony_store.put(b"forever", make_pending(b"forever"))

        assert ceremony_store.purge_expired() == 1
        assert ceremony_store.peek(b"old") is None
        assert ceremony_store.peek(b"fresh") is not None
        assert ceremony_store.peek(b"forever") is not None

