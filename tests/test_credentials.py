import threading
from unittest.mock import MagicMock

import pytest
from msal_extensions import FilePersistence

from gym_client.credentials import CredentialStore, UserCache
from gym_client.errors import CredentialStoreError, ErrorKind
from gym_client.models import CredentialPair, User


@pytest.fixture
def store_path(tmp_path):
    return str(tmp_path / "credentials.bin")


def _store(path):
    return CredentialStore(FilePersistence(path))


class TestCredentialStore:
    def test_missing_file_loads_as_none(self, store_path) -> None:
        assert _store(store_path).load() is None

    def test_saved_pair_survives_restart(self, store_path) -> None:
        _store(store_path).save(CredentialPair("access-1", "refresh-1"))

        reopened = _store(store_path)
        assert reopened.current() is None
        assert reopened.load() == CredentialPair("access-1", "refresh-1")
        assert reopened.access_token() == "access-1"

    def test_save_replaces_wholesale(self, store_path) -> None:
        store = _store(store_path)
        store.save(CredentialPair("access-1", "refresh-1"))
        store.save(CredentialPair("access-2", "refresh-2"))

        assert _store(store_path).load() == CredentialPair("access-2", "refresh-2")

    def test_clear_is_idempotent(self, store_path) -> None:
        store = _store(store_path)
        store.save(CredentialPair("access-1", "refresh-1"))

        store.clear()
        store.clear()

        assert store.current() is None
        assert _store(store_path).load() is None

    def test_conditional_save_skips_a_replaced_pair(self, store_path) -> None:
        store = _store(store_path)
        store.save(CredentialPair("access-2", "refresh-2"))

        def holds_refresh_1(pair):
            return pair is not None and pair.refresh_token == "refresh-1"

        assert store.save_if(holds_refresh_1, CredentialPair("access-3", "refresh-3")) is False
        assert store.clear_if(holds_refresh_1) is False
        assert _store(store_path).load() == CredentialPair("access-2", "refresh-2")

    def test_conditional_save_and_clear_when_pair_matches(self, store_path) -> None:
        store = _store(store_path)
        store.save(CredentialPair("access-1", "refresh-1"))

        def holds_refresh_1(pair):
            return pair is not None and pair.refresh_token == "refresh-1"

        assert store.save_if(holds_refresh_1, CredentialPair("access-2", "refresh-1")) is True
        assert store.current() == CredentialPair("access-2", "refresh-1")
        assert store.clear_if(holds_refresh_1) is True
        assert _store(store_path).load() is None

    def test_malformed_content_loads_as_none(self, store_path) -> None:
        with open(store_path, "w", encoding="utf-8") as handle:
            handle.write('{"token": "only-half"}')

        assert _store(store_path).load() is None

    def test_read_failure_fails_open(self, store_path) -> None:
        persistence = MagicMock()
        persistence.get_location.return_value = store_path
        persistence.load.side_effect = PermissionError("denied")

        assert CredentialStore(persistence).load() is None

    def test_write_failure_is_surfaced(self, store_path) -> None:
        persistence = MagicMock()
        persistence.get_location.return_value = store_path
        persistence.save.side_effect = OSError("disk full")
        store = CredentialStore(persistence)

        with pytest.raises(CredentialStoreError) as excinfo:
            store.save(CredentialPair("access-1", "refresh-1"))

        assert excinfo.value.kind is ErrorKind.STORAGE_ERROR
        assert store.current() is None

    def test_readers_never_see_a_partial_pair(self, store_path) -> None:
        store = _store(store_path)
        store.save(CredentialPair("access-0", "refresh-0"))
        torn = []

        def writer():
            for number in range(1, 40):
                store.save(CredentialPair(f"access-{number}", f"refresh-{number}"))

        def reader():
            for _ in range(200):
                pair = store.current()
                if pair.access_token.split("-")[1] != pair.refresh_token.split("-")[1]:
                    torn.append(pair)

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert torn == []
        assert _store(store_path).load() == CredentialPair("access-39", "refresh-39")

    def test_repr_hides_tokens(self) -> None:
        assert "secret" not in repr(CredentialPair("secret-a", "secret-r"))


class TestUserCache:
    def test_round_trip(self, tmp_path) -> None:
        path = str(tmp_path / "user.bin")
        user = User(id="7", name="Ana", email="ana@gym.com", avatar_ref="7-ana.png")

        UserCache(FilePersistence(path)).save(user)

        assert UserCache(FilePersistence(path)).load() == user
