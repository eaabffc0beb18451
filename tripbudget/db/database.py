import aiosqlite

from tripbudget.config import settings

SCHEMA = """
CREATE TABLE IF NOT EXISTS vacations (
    id TEXT PRIMARY KEY,
    destination TEXT NOT NULL,
    country TEXT NOT NULL,
    hotel TEXT NOT NULL,
    start_date TIMESTAMP NOT NULL,
    end_date TIMESTAMP NOT NULL,
    budget REAL CHECK(budget IS NULL OR budget >= 0),
    budget_currency TEXT NOT NULL,
    currency TEXT,
    image_url TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    vacation_id TEXT NOT NULL REFERENCES vacations(id) ON DELETE CASCADE,
    amount REAL NOT NULL CHECK(amount >= 0),
    currency TEXT NOT NULL,
    amount_base REAL NOT NULL CHECK(amount_base >= 0),
    category TEXT NOT NULL CHECK(category IN (
        'transport', 'accommodation', 'food', 'entertainment', 'shopping', 'other'
    )),
    description TEXT NOT NULL DEFAULT '',
    expense_date DATE NOT NULL,
    image_url TEXT,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS exchange_rates (
    base_currency TEXT NOT NULL,
    target_currency TEXT NOT NULL,
    rate REAL NOT NULL CHECK(rate > 0),
    source TEXT NOT NULL CHECK(source IN ('api', 'manual')),
    updated_at TIMESTAMP NOT NULL,
    PRIMARY KEY (base_currency, target_currency, source)
);

CREATE TABLE IF NOT EXISTS custom_currencies (
    code TEXT PRIMARY KEY COLLATE NOCASE,
    name TEXT NOT NULL,
    symbol TEXT NOT NULL,
    flag TEXT
);

CREATE INDEX IF NOT EXISTS idx_vacations_start ON vacations(start_date);
CREATE INDEX IF NOT EXISTS idx_expenses_vacation ON expenses(vacation_id);
CREATE INDEX IF NOT EXISTS idx_expenses_vacation_date ON expenses(vacation_id, expense_date DESC);
"""

_db: aiosqlite.Connection | None = None


async def get_db() -> aiosqlite.Connection:
    global _db
    if _db is None:
        _db = await aiosqlite.connect(settings.db_path)
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys=ON")
    return _db


async def close_db():
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def init_db():
    db = await get_db()
    await db.executescript(SCHEMA)
    await db.commit()
