from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from config import Settings, get_settings
from errors import AuthorizationError, DealNotFoundError, DealValidationError, RemoteOperationError
from models.deal import as_utc
from services.cache import MonthlyCache
from services.common import format_month_key
from services.deals import DealService


def this_month():
    return format_month_key(datetime.now(timezone.utc).date())


@pytest.fixture
def service(signed_in):
    return DealService(signed_in)


def test_preview(service):
    preview = service.preview(1000, 1, 1)
    assert preview.buy_amount == pytest.approx(990)
    assert preview.sell_amount == pytest.approx(1010)
    assert preview.pnl == pytest.approx(20)


def test_preview_is_lenient_by_default(service):
    preview = service.preview("", None, "abc")
    assert (preview.buy_amount, preview.sell_amount) == (0.0, 0.0)


def test_preview_strict_mode_raises(signed_in):
    strict = DealService(signed_in, settings=Settings(numeric_mode="strict", app_timezone="UTC"))
    with pytest.raises(ValueError):
        strict.preview("abc", 1, 1)


def test_create_deal_computes_and_clamps(service, signed_in):
    deal = service.create_deal(1000, -5, 1)

    assert deal.user_id == signed_in.user_id
    assert deal.buy_commission == 0
    assert deal.buy_amount == pytest.approx(1000)
    assert deal.sell_commission == 1
    assert deal.sell_amount == pytest.approx(1010)


@pytest.mark.parametrize("usdt,buy,sell", [
    (0, 1, 1),
    (-10, 1, 1),
    ("abc", 1, 1),
    (float("nan"), 1, 1),
    (100, 101, 1),
    (100, 1, -150),
    (100, "", 1),
    ("", 1, 1),
    ("  ", 1, 1),
])
def test_create_deal_rejects_bad_input(service, usdt, buy, sell):
    with pytest.raises(DealValidationError):
        service.create_deal(usdt, buy, sell)


def test_create_requires_sign_in(auth):
    service = DealService(auth)
    with pytest.raises(AuthorizationError):
        service.create_deal(100, 1, 1)
    with pytest.raises(AuthorizationError):
        service.list_month(this_month())


def test_list_month_and_stats(service):
    first = service.create_deal(1000, 1, 1)
    second = service.create_deal(500, 0, 2)

    deals = service.list_month(this_month())
    stats = service.month_stats(this_month())

    assert {d.id for d in deals} == {first.id, second.id}
    assert stats.pnl == pytest.approx(20 + 10)
    assert stats.total == pytest.approx(2000 + 1010)


def test_list_month_rejects_bad_key(service):
    with pytest.raises(ValueError):
        service.list_month("2024-13")


def test_empty_month(service):
    assert service.list_month("2001-01") == []
    stats = service.month_stats("2001-01")
    assert (stats.pnl, stats.total) == (0.0, 0.0)


def test_reads_are_cached_until_mutation(service, signed_in):
    service.create_deal(1000, 1, 1)
    month = this_month()
    service.list_month(month)
    assert service.cache.get(signed_in.user_id, month) is not None

    service.create_deal(100, 0, 0)

    assert service.cache.get(signed_in.user_id, month) is None
    assert len(service.list_month(month)) == 2


def test_failed_mutation_keeps_cache(signed_in):
    class BrokenRepository:
        @staticmethod
        def get_in_range(user_id, start, end):
            return []

        @staticmethod
        def add(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    service = DealService(signed_in, repository=BrokenRepository)
    service.list_month(this_month())

    with pytest.raises(RemoteOperationError):
        service.create_deal(100, 1, 1)
    assert service.cache.get(signed_in.user_id, this_month()) is not None


def test_update_deal(service):
    deal = service.create_deal(1000, 1, 1)

    updated = service.update_deal(deal.id, sell_commission=-5, sell_amount="1200")

    assert updated.sell_commission == 0
    assert updated.sell_amount == 1200
    assert as_utc(updated.deal_date) == as_utc(deal.deal_date)
    assert service.month_stats(this_month()).pnl == pytest.approx(1200 - 990)


@pytest.mark.parametrize("fields", [
    {"buy_amount": "abc", "sell_commission": "x"},
    {"buy_amount": "abc"},
    {"sell_amount": ""},
    {"usdt": float("nan")},
    {"usdt": None},
    {"buy_amount": -1},
    {"sell_commission": 250},
])
def test_update_rejects_malformed_values(service, fields):
    deal = service.create_deal(1000, 1, 1)

    with pytest.raises(DealValidationError):
        service.update_deal(deal.id, **fields)

    stored = service.list_month(this_month())[0]
    assert stored.buy_amount == pytest.approx(990)
    assert stored.sell_amount == pytest.approx(1010)
    assert stored.sell_commission == 1


def test_update_rejects_write_once_fields(service):
    deal = service.create_deal(1000, 1, 1)
    with pytest.raises(DealValidationError):
        service.update_deal(deal.id, deal_date=datetime(2020, 1, 1))
    with pytest.raises(DealValidationError):
        service.update_deal(deal.id, user_id="someone-else")
    with pytest.raises(DealValidationError):
        service.update_deal(deal.id)
    with pytest.raises(DealValidationError):
        service.update_deal(deal.id, usdt=0)


def test_update_and_delete_missing_deal(service):
    with pytest.raises(DealNotFoundError):
        service.update_deal(9999, usdt=10)
    with pytest.raises(DealNotFoundError):
        service.delete_deal(9999)


def test_delete_deal(service):
    deal = service.create_deal(1000, 1, 1)
    service.list_month(this_month())

    service.delete_deal(deal.id)

    assert service.list_month(this_month()) == []


def test_users_cannot_see_each_other(service, provider, signed_in):
    alice_deal = service.create_deal(1000, 1, 1)
    provider.sign_up("bob@example.com", "secret-2")
    provider.sign_in("bob@example.com", "secret-2")

    assert service.list_month(this_month()) == []
    with pytest.raises(DealNotFoundError):
        service.delete_deal(alice_deal.id)


def test_sign_out_clears_cache(service, provider):
    service.create_deal(1000, 1, 1)
    service.list_month(this_month())
    assert len(service.cache) == 1

    provider.sign_out()

    assert len(service.cache) == 0
    with pytest.raises(AuthorizationError):
        service.list_month(this_month())


def test_reads_retry_transient_errors(signed_in):
    calls = []

    class FlakyRepository:
        @staticmethod
        def get_in_range(user_id, start, end):
            calls.append(user_id)
            if len(calls) < 2:
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return []

    settings = Settings(store_retry_attempts=3, app_timezone="UTC")
    service = DealService(signed_in, repository=FlakyRepository, cache=MonthlyCache(), settings=settings)

    assert service.list_month("2024-02") == []
    assert len(calls) == 2


def test_reads_give_up_after_retries(signed_in):
    class DownRepository:
        @staticmethod
        def get_in_range(user_id, start, end):
            raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    service = DealService(signed_in, repository=DownRepository, settings=get_settings())
    with pytest.raises(RemoteOperationError):
        service.list_month("2024-02")
