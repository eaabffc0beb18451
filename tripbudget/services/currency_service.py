import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx

from tripbudget.config import settings
from tripbudget.currency import (
    BUILTIN_CURRENCIES,
    POPULAR_CODES,
    CurrencyInfo,
    DuplicateCurrencyError,
    merge_currencies,
    normalize_code,
    validate_code,
)
from tripbudget.db.database import get_db

logger = logging.getLogger(__name__)

# Returned for any pair with a missing rate so a figure is always rendered.
IDENTITY_RATE = 1.0

# Approximate units per 1 CHF, used only when neither a fetched nor a persisted
# table is available.
FALLBACK_RATES: dict[str, float] = {
    "CHF": 1.0,
    "EUR": 0.93,
    "USD": 1.11,
    "GBP": 0.80,
    "JPY": 164.5,
    "CAD": 1.48,
    "AUD": 1.66,
    "SEK": 11.45,
    "NOK": 11.89,
    "DKK": 6.95,
}

_FETCH_ERRORS = (httpx.HTTPError, KeyError, TypeError, ValueError)


@dataclass(slots=True)
class RateCacheStatus:
    has_cache: bool
    age: timedelta | None
    is_expired: bool
    last_update: datetime | None
    source: str | None


@dataclass(slots=True)
class CurrencySections:
    popular: list[CurrencyInfo]
    all: list[CurrencyInfo]


def rebase(rates: dict[str, float], base: str) -> dict[str, float]:
    """Express a rate table against another base currency.

    Returns an empty table when the new base is not part of the input.
    """
    pivot = rates.get(base)
    if not pivot:
        return {}
    return {code: rate / pivot for code, rate in rates.items()}


def pair_rate(rates: dict[str, float], from_code: str, to_code: str) -> float:
    """Rate that turns one unit of from_code into to_code.

    Identity fallback: when either side has no usable rate the pair rate is
    1.0 and the caller gets the amount back unchanged.
    """
    src = rates.get(from_code)
    dst = rates.get(to_code)
    if not src or not dst:
        return IDENTITY_RATE
    return dst / src


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CurrencyService:
    """Exchange rates, conversion and the currency catalog.

    Rates are held as units of each currency per one unit of base_currency.
    """

    def __init__(
        self,
        base_currency: str | None = None,
        cache_hours: int | None = None,
        rate_url: str | None = None,
    ) -> None:
        self.base_currency = normalize_code(base_currency or settings.base_currency)
        if cache_hours is None:
            cache_hours = settings.exchange_rate_cache_hours
        self.cache_ttl = timedelta(hours=cache_hours)
        self.rate_url = rate_url or settings.exchange_rate_url
        self.rates_version = 0

        self._lock = asyncio.Lock()
        self._rates: dict[str, float] | None = None
        self._loaded_at: datetime | None = None
        self._base_rates: dict[str, float] = {}
        self._base_source: str | None = None
        self._api_fetched_at: datetime | None = None
        self._manual: dict[str, float] = {}
        self._catalog: list[CurrencyInfo] = list(BUILTIN_CURRENCIES)
        self._missing_logged: set[str] = set()

    # -- conversion ---------------------------------------------------------

    async def convert(self, amount: float, from_code: str, to_code: str) -> float:
        from_code = normalize_code(from_code)
        to_code = normalize_code(to_code)
        if from_code == to_code:
            return amount
        rates = await self.get_rates()
        for code in (from_code, to_code):
            if code not in rates and code not in self._missing_logged:
                self._missing_logged.add(code)
                logger.warning("No exchange rate for %s, converting at identity", code, extra={"currency": code})
        return amount * pair_rate(rates, from_code, to_code)

    async def convert_to_base(self, amount: float, currency: str) -> float:
        return await self.convert(amount, currency, self.base_currency)

    # -- rate table ---------------------------------------------------------

    async def get_rates(self) -> dict[str, float]:
        async with self._lock:
            if self._rates is not None and not self._is_expired(self._loaded_at):
                return self._rates
            await self._resolve_rates()
            return self._rates

    async def refresh_rates(self) -> bool:
        async with self._lock:
            try:
                fetched = await self._fetch_rates()
            except _FETCH_ERRORS:
                logger.warning("Rate refresh failed for base %s", self.base_currency, exc_info=True)
                return False
            await self._store_api_rates(fetched)
            _, _, self._manual = await self._load_stored_rates()
            self._apply_base_rates(fetched, "api", datetime.now(timezone.utc))
            return True

    async def set_manual_rate(self, currency: str, rate: float) -> None:
        code = validate_code(currency)
        if rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {rate}")
        db = await get_db()
        await db.execute(
            "INSERT OR REPLACE INTO exchange_rates "
            "(base_currency, target_currency, rate, source, updated_at) VALUES (?, ?, ?, 'manual', ?)",
            (self.base_currency, code, rate, datetime.now(timezone.utc).isoformat()),
        )
        await db.commit()
        logger.info("Manual rate set: 1 %s = %s %s", self.base_currency, rate, code, extra={"currency": code})
        async with self._lock:
            self._manual[code] = rate
            self._recompose()

    async def clear_manual_rate(self, currency: str) -> bool:
        code = normalize_code(currency)
        db = await get_db()
        cursor = await db.execute(
            "DELETE FROM exchange_rates WHERE base_currency = ? AND target_currency = ? AND source = 'manual'",
            (self.base_currency, code),
        )
        await db.commit()
        async with self._lock:
            self._manual.pop(code, None)
            self._recompose()
        return cursor.rowcount > 0

    async def cache_status(self) -> RateCacheStatus:
        if self._api_fetched_at is None:
            await self.get_rates()
        fetched_at = self._api_fetched_at
        if fetched_at is None:
            return RateCacheStatus(False, None, True, None, self._base_source)
        return RateCacheStatus(
            has_cache=True,
            age=datetime.now(timezone.utc) - fetched_at,
            is_expired=self._is_expired(fetched_at),
            last_update=fetched_at,
            source=self._base_source,
        )

    def _is_expired(self, stamp: datetime | None) -> bool:
        if stamp is None:
            return True
        return datetime.now(timezone.utc) - stamp > self.cache_ttl

    async def _resolve_rates(self) -> None:
        stored, stored_at, manual = await self._load_stored_rates()
        self._manual = manual
        if stored and not self._is_expired(stored_at):
            logger.debug("Using persisted rates for %s (fetched %s)", self.base_currency, stored_at)
            self._apply_base_rates(stored, "api", stored_at)
            return

        try:
            fetched = await self._fetch_rates()
        except _FETCH_ERRORS:
            logger.warning("Rate fetch failed for base %s, degrading", self.base_currency, exc_info=True)
        else:
            await self._store_api_rates(fetched)
            self._apply_base_rates(fetched, "api", datetime.now(timezone.utc))
            return

        if stored:
            logger.warning("Using stale persisted rates for %s (fetched %s)", self.base_currency, stored_at)
            self._apply_base_rates(stored, "api", stored_at)
        elif self._base_source == "api":
            logger.warning("Keeping stale in-memory rates for %s", self.base_currency)
            self._apply_base_rates(self._base_rates, "api", self._api_fetched_at)
        else:
            logger.warning("No rates available for %s, using built-in fallback table", self.base_currency)
            self._apply_base_rates(rebase(FALLBACK_RATES, self.base_currency), "fallback", None)

    def _apply_base_rates(self, rates: dict[str, float], source: str, fetched_at: datetime | None) -> None:
        self._base_rates = dict(rates)
        self._base_source = source
        self._api_fetched_at = fetched_at
        self._loaded_at = datetime.now(timezone.utc)
        self._recompose()

    def _recompose(self) -> None:
        rates = {**self._base_rates, **self._manual, self.base_currency: 1.0}
        if rates != self._rates:
            self.rates_version += 1
            logger.debug("Rate table now has %d currencies", len(rates), extra={"rates_version": self.rates_version})
        self._rates = rates

    async def _load_stored_rates(self) -> tuple[dict[str, float], datetime | None, dict[str, float]]:
        try:
            db = await get_db()
            cursor = await db.execute(
                "SELECT target_currency, rate, source, updated_at FROM exchange_rates WHERE base_currency = ?",
                (self.base_currency,),
            )
            rows = await cursor.fetchall()
        except sqlite3.Error:
            logger.warning("Could not read persisted rates", exc_info=True)
            return {}, None, dict(self._manual)

        api: dict[str, float] = {}
        manual: dict[str, float] = {}
        oldest: datetime | None = None
        for row in rows:
            if row["source"] == "manual":
                manual[row["target_currency"]] = row["rate"]
                continue
            api[row["target_currency"]] = row["rate"]
            stamp = _parse_timestamp(row["updated_at"])
            if oldest is None or stamp < oldest:
                oldest = stamp
        return api, oldest, manual

    async def _store_api_rates(self, rates: dict[str, float]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            db = await get_db()
            await db.executemany(
                "INSERT OR REPLACE INTO exchange_rates "
                "(base_currency, target_currency, rate, source, updated_at) VALUES (?, ?, ?, 'api', ?)",
                [(self.base_currency, code, rate, now) for code, rate in rates.items()],
            )
            await db.commit()
        except sqlite3.Error:
            logger.warning("Could not persist fetched rates", exc_info=True)
            return
        logger.debug("Persisted %d rates for %s", len(rates), self.base_currency)

    async def _fetch_rates(self) -> dict[str, float]:
        logger.info("Fetching live rates for base %s", self.base_currency)
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(f"{self.rate_url.rstrip('/')}/{self.base_currency}")
            resp.raise_for_status()
            data = resp.json()
        if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
            raise ValueError("Rate payload has no rates mapping")
        rates = {
            normalize_code(code): float(rate)
            for code, rate in data["rates"].items()
            if float(rate) > 0
        }
        if not rates:
            raise ValueError("Rate payload contained no usable rates")
        logger.info("Fetched %d rates for base %s", len(rates), self.base_currency)
        return rates

    # -- catalog ------------------------------------------------------------

    async def load_custom_currencies(self) -> list[CurrencyInfo]:
        db = await get_db()
        cursor = await db.execute("SELECT code, name, symbol, flag FROM custom_currencies ORDER BY code")
        rows = await cursor.fetchall()
        custom = [CurrencyInfo(row["code"], row["name"], row["symbol"], row["flag"]) for row in rows]
        self._catalog = merge_currencies(BUILTIN_CURRENCIES, custom)
        return self._catalog[len(BUILTIN_CURRENCIES):]

    async def add_custom_currency(self, info: CurrencyInfo) -> CurrencyInfo:
        merged = merge_currencies(self._catalog, [info])
        added = merged[-1]
        db = await get_db()
        try:
            await db.execute(
                "INSERT INTO custom_currencies (code, name, symbol, flag) VALUES (?, ?, ?, ?)",
                (added.code, added.name, added.symbol, added.flag),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateCurrencyError(info.code) from e
        await db.commit()
        self._catalog = merged
        logger.info("Added custom currency %s", added.code, extra={"currency": added.code})
        return added

    async def remove_custom_currency(self, code: str) -> bool:
        code = normalize_code(code)
        if any(c.code == code for c in BUILTIN_CURRENCIES):
            return False
        db = await get_db()
        cursor = await db.execute("DELETE FROM custom_currencies WHERE code = ?", (code,))
        await db.commit()
        if cursor.rowcount == 0:
            return False
        self._catalog = [c for c in self._catalog if c.code != code]
        return True

    @property
    def catalog(self) -> list[CurrencyInfo]:
        return list(self._catalog)

    def get_currency_info(self, code: str) -> CurrencyInfo | None:
        code = normalize_code(code)
        for info in self._catalog:
            if info.code == code:
                return info
        return None

    def search_currencies(self, query: str) -> list[CurrencyInfo]:
        term = query.strip().lower()
        return [c for c in self._catalog if term in c.code.lower() or term in c.name.lower()]

    def get_currency_sections(self) -> CurrencySections:
        popular = [info for code in POPULAR_CODES if (info := self.get_currency_info(code))]
        return CurrencySections(popular=popular, all=list(self._catalog))
