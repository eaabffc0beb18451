from unittest.mock import AsyncMock, patch

from tripbudget.currency import CurrencyInfo
from tripbudget.main import create_core
from tripbudget.services.currency_service import CurrencyService


async def test_create_core_wires_shared_instances():
    await CurrencyService(base_currency="CHF").add_custom_currency(CurrencyInfo("VND", "Vietnamese Dong", "₫"))

    core = await create_core(configure_logging=False)
    assert core.currency.base_currency == "CHF"
    assert core.currency.get_currency_info("VND") is not None
    assert core.vacations.ttl == 0.5
    assert await core.vacations.list() == []


async def test_core_close_closes_db():
    core = await create_core(configure_logging=False)
    with patch("tripbudget.main.close_db", AsyncMock()) as close:
        await core.close()
    close.assert_awaited_once()
