"""
Database migration script for Dealbook.
Moves a legacy single-leg deals table (type/amount/commission per row)
onto the two-leg schema. The old table is kept as deals_legacy.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import inspect, text
from sqlmodel import SQLModel

from db_engine import get_engine, init_db
from models import Deal
from models.deal import as_utc, to_storage_datetime, utc_now
from services.calculations import DealType, calc_total, clamp_percent, to_number

logger = logging.getLogger(__name__)

LEGACY_TABLE = "deals_legacy"


def _parse_stored_datetime(value) -> datetime:
    if not value:
        return utc_now()
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace(" ", "T"))
    # naive stored values are already UTC
    return to_storage_datetime(parsed) if parsed.tzinfo else as_utc(parsed)


def legacy_row_to_two_leg(row: dict) -> dict:
    """
    Convert one single-leg row into two-leg column values.
    A buy row fills the buy leg and a sell row fills the sell leg, with the
    leg amount taken from the single-leg total.
    """
    deal_type = str(row.get("type") or DealType.BUY.value).lower()
    commission = clamp_percent(row.get("commission"))
    leg_amount = calc_total(deal_type, row.get("amount"), commission)

    values = {
        "user_id": row["user_id"],
        "deal_date": _parse_stored_datetime(row.get("deal_date")),
        "usdt": to_number(row.get("usdt")),
        "buy_commission": 0.0,
        "buy_amount": 0.0,
        "sell_commission": 0.0,
        "sell_amount": 0.0,
    }
    # integer ids carry over; anything else gets a fresh one
    if isinstance(row.get("id"), int):
        values["id"] = row["id"]
    if deal_type == DealType.SELL.value:
        values["sell_commission"] = commission
        values["sell_amount"] = leg_amount
    else:
        values["buy_commission"] = commission
        values["buy_amount"] = leg_amount
    return values


def migrate_single_leg_deals(engine=None) -> int:
    """
    Rebuild the deals table in the two-leg layout if it still has the
    single-leg columns.

    Returns:
        Number of rows migrated (0 when there was nothing to do)
    """
    engine = engine or get_engine()
    inspector = inspect(engine)

    if not inspector.has_table(Deal.__tablename__):
        logger.info("No deals table yet. Nothing to migrate.")
        return 0

    columns = {col["name"] for col in inspector.get_columns(Deal.__tablename__)}
    if "type" not in columns:
        logger.info("Deals table already uses the two-leg layout.")
        return 0

    if inspector.has_table(LEGACY_TABLE):
        raise RuntimeError(f"Table {LEGACY_TABLE} already exists; refusing to overwrite it")

    legacy_indexes = [ix["name"] for ix in inspector.get_indexes(Deal.__tablename__) if ix.get("name")]

    with engine.begin() as conn:
        rows = conn.execute(text(
            "SELECT id, user_id, deal_date, type, usdt, amount, commission "
            f"FROM {Deal.__tablename__} ORDER BY id"
        )).mappings().all()

        conn.execute(text(f"ALTER TABLE {Deal.__tablename__} RENAME TO {LEGACY_TABLE}"))
        # index names would clash with the new table's
        for name in legacy_indexes:
            conn.execute(text(f'DROP INDEX IF EXISTS "{name}"'))

        SQLModel.metadata.create_all(conn, tables=[Deal.__table__])

        migrated = [legacy_row_to_two_leg(dict(row)) for row in rows]
        # one statement per row: rows with and without a carried-over id differ in columns
        for values in migrated:
            conn.execute(Deal.__table__.insert().values(**values))

    logger.info(f"Migrated {len(migrated)} single-leg deal(s); old rows kept in {LEGACY_TABLE}")
    return len(migrated)


def run_all_migrations(engine: Optional[object] = None):
    """Run all pending migrations, then create any missing tables."""
    logger.info("Dealbook database migration")
    migrate_single_leg_deals(engine)
    init_db()
    logger.info("Migration complete")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    run_all_migrations()
