"""
QuoteLedger transactional behaviour.

A second session stands in for a concurrent request: it commits a change to
the same quote between our header read and our header write. The version
column must turn that into a retry instead of a lost update.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from healthquote import models
from healthquote.database import SessionLocal
from healthquote.errors import Conflict, ValidationFailed
from healthquote.ledger import QuoteLedger
from healthquote.tax_policy import RatioPreservingPolicy, TaxPolicy


def _concurrent_add(quote_id, unit_price, description):
    other = SessionLocal()
    try:
        QuoteLedger(other).add_item(quote_id, 1, unit_price, description)
    finally:
        other.close()


def test_concurrent_writer_forces_retry_without_lost_update(ledger, empty_quote):
    quote_id = empty_quote.id
    versions_seen = []

    def add_vision_test(quote):
        versions_seen.append(quote.version)
        if len(versions_seen) == 1:
            _concurrent_add(quote_id, 500.0, "Audiometry (other clerk)")
        return ledger.items.add(quote, 2, 50.0, "Vision test")

    ledger.run(quote_id, add_vision_test)

    assert len(versions_seen) == 2
    assert versions_seen[1] > versions_seen[0]

    ledger.db.expire_all()
    items = ledger.items.list_by_quote(quote_id)
    assert sorted(i.description for i in items) == ["Audiometry (other clerk)", "Vision test"]
    quote = ledger.quotes.get(quote_id)
    assert (quote.subtotal, quote.tax, quote.total) == (600.0, 108.0, 708.0)


def test_retries_exhausted_raise_conflict_and_roll_back(db, empty_quote):
    quote_id = empty_quote.id
    ledger = QuoteLedger(db, max_attempts=2)

    def always_raced(quote):
        other = SessionLocal()
        try:
            QuoteLedger(other).recalculate(quote_id)
        finally:
            other.close()
        return ledger.items.add(quote, 1, 10.0, "Never lands")

    with pytest.raises(Conflict) as exc_info:
        ledger.run(quote_id, always_raced)
    assert exc_info.value.code == "CONCURRENT_MODIFICATION"

    db.expire_all()
    assert ledger.items.list_by_quote(quote_id) == []


class _RateServiceDown(TaxPolicy):
    name = "broken"

    def resolve(self, quote, subtotal):
        raise RuntimeError("rate lookup failed")


def test_failure_during_recompute_leaves_no_item_behind(db, empty_quote):
    quote_id = empty_quote.id
    ledger = QuoteLedger(db, policy=_RateServiceDown())

    with pytest.raises(RuntimeError):
        ledger.add_item(quote_id, 3, 20.0, "Spirometry")

    db.expire_all()
    assert db.query(models.QuoteItem).count() == 0
    quote = db.query(models.Quote).filter(models.Quote.id == quote_id).first()
    assert (quote.subtotal, quote.tax, quote.total) == (0.0, 0.0, 0.0)


def test_every_write_bumps_the_version(ledger, empty_quote):
    quote_id = empty_quote.id
    start = ledger.quotes.get(quote_id).version
    item = ledger.add_item(quote_id, 1, 10.0, "EKG")
    ledger.update_item(item.id, {"quantity": 2})
    ledger.delete_item(item.id)
    assert ledger.quotes.get(quote_id).version == start + 3


def test_recompute_twice_gives_identical_aggregates(ledger, empty_quote):
    quote_id = empty_quote.id
    ledger.add_item(quote_id, 7, 14.29, "Lab panel")
    quote = ledger.quotes.get(quote_id)
    first = ledger.recalculator.recompute(quote)
    second = ledger.recalculator.recompute(quote)
    assert first[:3] == second[:3]
    assert first.subtotal == Decimal("100.03")


def test_ratio_policy_scenario_a_on_legacy_header(db, company):
    """
    Header written with caller-supplied totals (1000 / 180) before the ledger
    existed. Adding 2 x 50 keeps the 18% ratio: 1100 / 198 / 1298.
    """
    ledger = QuoteLedger(db, policy=RatioPreservingPolicy())
    quote = ledger.open_quote(company.id, date(2026, 10, 1), date(2026, 10, 31))
    ledger.items.add(quote, 10, 100.0, "Pre-employment exam")
    quote.subtotal, quote.tax, quote.total = 1000.0, 180.0, 1180.0
    db.commit()

    ledger.add_item(quote.id, 2, 50.0, "Vision screening")

    db.expire_all()
    quote = ledger.quotes.get(quote.id)
    assert (quote.subtotal, quote.tax, quote.total) == (1100.0, 198.0, 1298.0)


@pytest.mark.parametrize("quantity, unit_price, code", [
    (10 ** 20, 1.0, "INVALID_QUANTITY"),
    (2, 1e308, "INVALID_UNIT_PRICE"),
    (True, 10.0, "INVALID_QUANTITY"),
    (1, True, "INVALID_UNIT_PRICE"),
])
def test_out_of_range_item_is_rejected_before_any_write(ledger, empty_quote, db, quantity, unit_price, code):
    with pytest.raises(ValidationFailed) as exc:
        ledger.add_item(empty_quote.id, quantity, unit_price, "Oversized line")
    assert exc.value.code == code
    assert db.query(models.QuoteItem).count() == 0


def _failing_insert(*args, **kwargs):
    raise IntegrityError("INSERT INTO quotes", {}, Exception("constraint failed"))


def test_lost_quote_number_race_is_a_conflict(ledger, empty_quote, company, monkeypatch):
    # Another writer committed this number after our pre-check ran
    monkeypatch.setattr(ledger.quotes, "create", _failing_insert)
    with pytest.raises(Conflict) as exc:
        ledger.open_quote(
            company.id, date(2026, 10, 1), date(2026, 10, 31),
            quote_number=empty_quote.quote_number,
        )
    assert exc.value.code == "DUPLICATE_QUOTE_NUMBER"


def test_other_integrity_errors_are_not_reported_as_duplicates(ledger, company, db, monkeypatch):
    monkeypatch.setattr(ledger.quotes, "create", _failing_insert)
    with pytest.raises(IntegrityError):
        ledger.open_quote(company.id, date(2026, 10, 1), date(2026, 10, 31), quote_number="QT-FRESH-001")
    assert db.query(models.Quote).count() == 0
