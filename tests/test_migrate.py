from datetime import datetime, timezone

import pytest
from sqlalchemy import inspect, text

from db_engine import get_engine
from migrate import LEGACY_TABLE, legacy_row_to_two_leg, migrate_single_leg_deals, run_all_migrations
from models.deal import as_utc
from repositories import DealRepository


@pytest.fixture
def legacy_table():
    engine = get_engine()
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE deals"))
        conn.execute(text(
            "CREATE TABLE deals ("
            " id INTEGER PRIMARY KEY,"
            " user_id TEXT NOT NULL,"
            " deal_date TEXT NOT NULL,"
            " type TEXT NOT NULL,"
            " usdt REAL NOT NULL,"
            " amount REAL NOT NULL,"
            " commission REAL NOT NULL)"
        ))
        conn.execute(text("CREATE INDEX ix_deals_user_id ON deals (user_id)"))
        conn.execute(text(
            "INSERT INTO deals (id, user_id, deal_date, type, usdt, amount, commission) VALUES "
            "(1, 'u1', '2024-02-03T10:00:00+00:00', 'buy', 100, 1000, 1),"
            "(2, 'u1', '2024-02-04T12:00:00+03:00', 'sell', 100, 1000, 150)"
        ))
    return engine


def test_legacy_row_conversion():
    buy = legacy_row_to_two_leg({
        "id": 7, "user_id": "u1", "deal_date": "2024-02-03 10:00:00",
        "type": "buy", "usdt": 100, "amount": 1000, "commission": 1,
    })
    assert buy["id"] == 7
    assert buy["buy_commission"] == 1
    assert buy["buy_amount"] == pytest.approx(1010)
    assert buy["sell_amount"] == 0
    assert buy["deal_date"] == datetime(2024, 2, 3, 10, 0, tzinfo=timezone.utc)


def test_migrates_single_leg_rows(legacy_table):
    assert migrate_single_leg_deals(legacy_table) == 2

    inspector = inspect(legacy_table)
    columns = {col["name"] for col in inspector.get_columns("deals")}
    assert "type" not in columns
    assert {"buy_amount", "sell_amount", "buy_commission", "sell_commission"} <= columns
    assert inspector.has_table(LEGACY_TABLE)

    buy = DealRepository.get_by_id(1, "u1")
    sell = DealRepository.get_by_id(2, "u1")
    assert buy.buy_amount == pytest.approx(1010)
    # commission clamped to 100 before the sell total is computed
    assert sell.sell_commission == 100
    assert sell.sell_amount == pytest.approx(0)
    assert as_utc(sell.deal_date) == datetime(2024, 2, 4, 9, 0, tzinfo=timezone.utc)


def test_migrated_table_accepts_new_deals(legacy_table):
    migrate_single_leg_deals(legacy_table)
    deal = DealRepository.add("u1", 10.0, 0.0, 10.0, 0.0, 10.0)
    assert deal.id == 3


def test_migration_is_idempotent(legacy_table):
    migrate_single_leg_deals(legacy_table)
    assert migrate_single_leg_deals(legacy_table) == 0
    run_all_migrations(legacy_table)


def test_nothing_to_migrate_on_fresh_schema():
    assert migrate_single_leg_deals() == 0
