from types import SimpleNamespace

import pytest

from vitalwatch import database


class _FakeConn:
    def __init__(self) -> None:
        self.synced = []

    async def run_sync(self, fn) -> None:
        self.synced.append(fn)


class _FakeBeginFactory:
    def __init__(self, fail_times: int) -> None:
        self.fail_times = fail_times
        self.calls = 0
        self.conn = _FakeConn()

    def __call__(self):
        self.calls += 1
        call_number = self.calls
        fail_times = self.fail_times
        conn = self.conn

        class _Ctx:
            async def __aenter__(self_nonlocal):
                if call_number <= fail_times:
                    raise ConnectionError("db not ready")
                return conn

            async def __aexit__(self_nonlocal, exc_type, exc, tb):
                return False

        return _Ctx()


@pytest.fixture()
def sql_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(database.settings, "storage_backend", "sql", raising=False)
    monkeypatch.setattr(database.settings, "debug", False, raising=False)
    monkeypatch.setattr(
        database.settings,
        "database_init_retry_delay_seconds",
        0.01,
        raising=False,
    )

    async def _noop_sleep(_seconds: float) -> None:
        return None

    monkeypatch.setattr(database.asyncio, "sleep", _noop_sleep)


@pytest.mark.asyncio
async def test_init_db_retries_until_success(
    monkeypatch: pytest.MonkeyPatch, sql_backend
) -> None:
    begin_factory = _FakeBeginFactory(fail_times=2)
    monkeypatch.setattr(database, "engine", SimpleNamespace(begin=begin_factory))
    monkeypatch.setattr(database.settings, "database_init_retries", 3, raising=False)

    await database.init_db()

    assert begin_factory.calls == 3
    assert begin_factory.conn.synced == []


@pytest.mark.asyncio
async def test_init_db_raises_after_retries_exhausted(
    monkeypatch: pytest.MonkeyPatch, sql_backend
) -> None:
    begin_factory = _FakeBeginFactory(fail_times=10)
    monkeypatch.setattr(database, "engine", SimpleNamespace(begin=begin_factory))
    monkeypatch.setattr(database.settings, "database_init_retries", 1, raising=False)

    with pytest.raises(ConnectionError, match="db not ready"):
        await database.init_db()

    assert begin_factory.calls == 2


@pytest.mark.asyncio
async def test_init_db_creates_tables_in_debug(
    monkeypatch: pytest.MonkeyPatch, sql_backend
) -> None:
    begin_factory = _FakeBeginFactory(fail_times=0)
    monkeypatch.setattr(database, "engine", SimpleNamespace(begin=begin_factory))
    monkeypatch.setattr(database.settings, "debug", True, raising=False)

    await database.init_db()

    assert begin_factory.conn.synced == [database.Base.metadata.create_all]


@pytest.mark.asyncio
async def test_init_db_skips_for_memory_storage(monkeypatch: pytest.MonkeyPatch) -> None:
    begin_factory = _FakeBeginFactory(fail_times=0)
    monkeypatch.setattr(database, "engine", SimpleNamespace(begin=begin_factory))
    monkeypatch.setattr(database.settings, "storage_backend", "memory", raising=False)

    await database.init_db()

    assert begin_factory.calls == 0
