"""consent-gate – Consent Persistence Tests.

Uses fakeredis and a temporary SQLite file – no external services.
"""

import fakeredis.aioredis
import pytest

from consent_gate.core.errors import ErrorKind
from consent_gate.core.models import ConsentRecord
from consent_gate.memory.store import (
    ConsentStore,
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    SQLiteKeyValueStore,
)

from conftest import FailingKeyValueStore


class TestSQLiteKeyValueStore:
    @pytest.mark.anyio
    async def test_set_get_remove(self, tmp_path) -> None:
        store = SQLiteKeyValueStore(str(tmp_path / "data" / "consent.db"))
        await store.init()
        try:
            assert await store.get("general_consent") is None
            await store.set("general_consent", True)
            assert await store.get("general_consent") is True
            await store.set("general_consent", False)
            assert await store.get("general_consent") is False
            await store.remove("general_consent")
            assert await store.get("general_consent") is None
        finally:
            await store.close()

    @pytest.mark.anyio
    async def test_values_survive_reopen(self, tmp_path) -> None:
        path = str(tmp_path / "consent.db")
        first = SQLiteKeyValueStore(path)
        await first.init()
        await first.set("effective_permission", True)
        await first.close()

        second = SQLiteKeyValueStore(path)
        await second.init()
        assert await second.get("effective_permission") is True
        await second.close()

    @pytest.mark.anyio
    async def test_db_property_raises_before_init(self) -> None:
        with pytest.raises(RuntimeError, match="not initialized"):
            await SQLiteKeyValueStore(":memory:").get("x")


class TestRedisKeyValueStore:
    @pytest.fixture
    async def store(self):
        store = RedisKeyValueStore()
        store._client = fakeredis.aioredis.FakeRedis(decode_responses=True)
        yield store
        await store.close()

    @pytest.mark.anyio
    async def test_set_get_remove(self, store: RedisKeyValueStore) -> None:
        assert await store.get("general_consent") is None
        await store.set("general_consent", True)
        assert await store.get("general_consent") is True
        assert await store.client.get("consent_gate:general_consent") == "1"
        await store.remove("general_consent")
        assert await store.get("general_consent") is None

    @pytest.mark.anyio
    async def test_client_raises_when_disconnected(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            await RedisKeyValueStore().get("x")


class TestConsentStore:
    @pytest.mark.anyio
    async def test_absent_keys_load_as_denied(self) -> None:
        record, result = await ConsentStore(InMemoryKeyValueStore()).load()
        assert result.ok
        assert record == ConsentRecord(general_consent=False, effective_permission=False)

    @pytest.mark.anyio
    async def test_round_trip(self) -> None:
        store = ConsentStore(InMemoryKeyValueStore())
        await store.save_general(True)
        await store.save_effective(True)
        record, _ = await store.load()
        assert record == ConsentRecord(general_consent=True, effective_permission=True)

    @pytest.mark.anyio
    async def test_invalid_record_is_repaired(self) -> None:
        backend = InMemoryKeyValueStore({"general_consent": False, "effective_permission": True})
        record, _ = await ConsentStore(backend).load()
        assert record.effective_permission is False

    @pytest.mark.anyio
    async def test_custom_key_names(self) -> None:
        backend = InMemoryKeyValueStore()
        store = ConsentStore(backend, general_key="one_trust_consent", effective_key="final_consent")
        await store.save_general(True)
        assert await backend.get("one_trust_consent") is True

    @pytest.mark.anyio
    async def test_clear_removes_both_keys(self) -> None:
        backend = InMemoryKeyValueStore({"general_consent": True, "effective_permission": True})
        result = await ConsentStore(backend).clear()
        assert result.ok
        assert await backend.get("general_consent") is None
        assert await backend.get("effective_permission") is None

    @pytest.mark.anyio
    async def test_failures_become_results(self) -> None:
        store = ConsentStore(FailingKeyValueStore())
        record, result = await store.load()
        assert record == ConsentRecord()
        assert result.error_kind is ErrorKind.PERSISTENCE

        write = await store.save_general(True)
        assert not write.ok
        assert write.error_kind is ErrorKind.PERSISTENCE
