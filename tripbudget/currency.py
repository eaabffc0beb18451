import re
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True, slots=True)
class CurrencyInfo:
    code: str
    name: str
    symbol: str
    flag: str | None = None


BUILTIN_CURRENCIES: tuple[CurrencyInfo, ...] = (
    CurrencyInfo("CHF", "Swiss Franc", "CHF", "\U0001f1e8\U0001f1ed"),
    CurrencyInfo("EUR", "Euro", "€", "\U0001f1ea\U0001f1fa"),
    CurrencyInfo("USD", "US Dollar", "$", "\U0001f1fa\U0001f1f8"),
    CurrencyInfo("GBP", "British Pound", "£", "\U0001f1ec\U0001f1e7"),
    CurrencyInfo("JPY", "Japanese Yen", "¥", "\U0001f1ef\U0001f1f5"),
    CurrencyInfo("CAD", "Canadian Dollar", "C$", "\U0001f1e8\U0001f1e6"),
    CurrencyInfo("AUD", "Australian Dollar", "A$", "\U0001f1e6\U0001f1fa"),
    CurrencyInfo("SEK", "Swedish Krona", "SEK", "\U0001f1f8\U0001f1ea"),
    CurrencyInfo("NOK", "Norwegian Krone", "NOK", "\U0001f1f3\U0001f1f4"),
    CurrencyInfo("DKK", "Danish Krone", "DKK", "\U0001f1e9\U0001f1f0"),
    CurrencyInfo("PLN", "Polish Zloty", "zł"),
    CurrencyInfo("CZK", "Czech Koruna", "Kč"),
    CurrencyInfo("HUF", "Hungarian Forint", "Ft"),
    CurrencyInfo("RON", "Romanian Leu", "lei"),
    CurrencyInfo("BGN", "Bulgarian Lev", "лв"),
    CurrencyInfo("TRY", "Turkish Lira", "₺"),
    CurrencyInfo("ISK", "Icelandic Krona", "kr"),
    CurrencyInfo("BRL", "Brazilian Real", "R$"),
    CurrencyInfo("MXN", "Mexican Peso", "MX$"),
    CurrencyInfo("NZD", "New Zealand Dollar", "NZ$"),
    CurrencyInfo("INR", "Indian Rupee", "₹"),
    CurrencyInfo("KRW", "South Korean Won", "₩"),
    CurrencyInfo("CNY", "Chinese Yuan", "¥"),
    CurrencyInfo("HKD", "Hong Kong Dollar", "HK$"),
    CurrencyInfo("SGD", "Singapore Dollar", "S$"),
    CurrencyInfo("THB", "Thai Baht", "฿"),
    CurrencyInfo("PHP", "Philippine Peso", "₱"),
    CurrencyInfo("MYR", "Malaysian Ringgit", "RM"),
    CurrencyInfo("IDR", "Indonesian Rupiah", "Rp"),
    CurrencyInfo("ILS", "Israeli New Shekel", "₪"),
    CurrencyInfo("ZAR", "South African Rand", "R"),
)

POPULAR_CODES: tuple[str, ...] = ("CHF", "EUR", "USD", "GBP", "JPY", "CAD")

# Symbols rendered before the amount; everything else is appended.
_PREFIX_SYMBOLS = frozenset({"€", "$", "£", "¥", "₹", "₩", "₺", "₪", "₱"})

_CODE_RE = re.compile(r"^[A-Z]{3,5}$")


class InvalidCurrencyError(ValueError):
    def __init__(self, currency: str) -> None:
        self.currency = currency
        super().__init__(f"Invalid currency code '{currency}'. Use 3 to 5 letters, e.g. EUR.")


class DuplicateCurrencyError(ValueError):
    def __init__(self, currency: str) -> None:
        self.currency = currency
        super().__init__(f"Currency '{currency}' already exists.")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def validate_code(code: str) -> str:
    normalized = normalize_code(code)
    if not _CODE_RE.match(normalized):
        raise InvalidCurrencyError(code)
    return normalized


def merge_currencies(
    builtin: Iterable[CurrencyInfo], custom: Iterable[CurrencyInfo]
) -> list[CurrencyInfo]:
    """Append custom entries to the built-in catalog.

    Codes are compared case-insensitively; a custom entry that collides with
    any earlier entry raises DuplicateCurrencyError.
    """
    merged = list(builtin)
    seen = {c.code.upper() for c in merged}
    for info in custom:
        code = validate_code(info.code)
        if code in seen:
            raise DuplicateCurrencyError(info.code)
        seen.add(code)
        merged.append(CurrencyInfo(code, info.name.strip(), info.symbol.strip() or code, info.flag))
    return merged


def currency_symbol(code: str, catalog: Iterable[CurrencyInfo] = BUILTIN_CURRENCIES) -> str:
    code = normalize_code(code)
    for info in catalog:
        if info.code == code:
            return info.symbol
    return code


def format_amount(amount: float, currency_code: str, catalog: Iterable[CurrencyInfo] = BUILTIN_CURRENCIES) -> str:
    sym = currency_symbol(currency_code, catalog)
    if sym in _PREFIX_SYMBOLS or sym.endswith("$"):
        return f"{sym}{amount:.2f}"
    return f"{amount:.2f} {sym}"
