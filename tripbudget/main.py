import logging
from dataclasses import dataclass

from tripbudget.config import settings
from tripbudget.db.database import close_db, init_db
from tripbudget.logging import setup_logging
from tripbudget.services.currency_service import CurrencyService
from tripbudget.services.vacation_cache import VacationCache
from tripbudget.services.vacation_service import SQLiteVacationStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Core:
    """The shared per-process instances handed to UI collaborators."""

    currency: CurrencyService
    vacations: VacationCache

    async def close(self) -> None:
        logger.info("Shutting down gracefully...")
        await close_db()
        logger.info("Shutdown complete")


async def create_core(configure_logging: bool = True) -> Core:
    if configure_logging:
        setup_logging(
            level=logging.DEBUG if settings.debug else logging.INFO,
            base_currency=settings.base_currency,
        )
    await init_db()

    currency = CurrencyService()
    custom = await currency.load_custom_currencies()
    vacations = VacationCache(SQLiteVacationStore())
    logger.info(
        "Core ready (base currency %s, %d custom currencies)", currency.base_currency, len(custom)
    )
    return Core(currency=currency, vacations=vacations)
