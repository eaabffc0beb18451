import os

os.environ.setdefault("BASE_CURRENCY", "CHF")

import aiosqlite
import httpx
import pytest

import tripbudget.db.database as db_mod


@pytest.fixture(autouse=True)
async def test_db(monkeypatch):
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.executescript(db_mod.SCHEMA)
    await conn.commit()

    async def _get_db():
        return conn

    monkeypatch.setattr(db_mod, "get_db", _get_db)
    monkeypatch.setattr(db_mod, "_db", conn)

    yield conn

    await conn.close()


@pytest.fixture(autouse=True)
def no_network(monkeypatch):
    from tripbudget.services.currency_service import CurrencyService

    async def _offline(self):
        raise httpx.ConnectError("network disabled in tests")

    monkeypatch.setattr(CurrencyService, "_fetch_rates", _offline)


@pytest.fixture
async def converter():
    from tripbudget.services.currency_service import CurrencyService

    service = CurrencyService(base_currency="CHF", cache_hours=24)
    await service._store_api_rates({"CHF": 1.0, "EUR": 0.9, "USD": 1.1, "JPY": 160.0})
    return service
