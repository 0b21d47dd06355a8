"""
Quote ledger: keeps a quote's subtotal/tax/total equal to the aggregation of
its current line items.

    subtotal = round2(sum of item.total_price)
    tax      = round2(subtotal * rate)      rate from the active TaxPolicy
    total    = round2(subtotal + tax)

Item mutations never write on their own. QuoteLedger.run() wraps
"lock header → mutate items → recompute → commit" in one transaction and
retries the whole unit when a concurrent writer bumped the quote's version
first, so the header cannot drift from its items.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, NamedTuple, Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import models
from .config import settings
from .database import get_db
from .errors import Conflict, ValidationFailed
from .line_items import LineItemStore
from .quote_repository import QuoteRepository
from .tax_policy import TaxPolicy, get_tax_policy, to_decimal

logger = logging.getLogger("healthquote.ledger")

CENT = Decimal("0.01")


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class Aggregates(NamedTuple):
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    rate: Decimal


def compute_aggregates(line_totals: Iterable, rate_for: Callable[[Decimal], Decimal]) -> Aggregates:
    """
    Pure aggregation step.

    Args:
        line_totals: total_price of every item currently on the quote
        rate_for: called with the new subtotal, returns the VAT rate
    """
    subtotal = round2(sum((to_decimal(t) for t in line_totals), Decimal("0")))
    rate = to_decimal(rate_for(subtotal))
    tax = round2(subtotal * rate)
    total = round2(subtotal + tax)
    return Aggregates(subtotal=subtotal, tax=tax, total=total, rate=rate)


class LedgerRecalculator:

    def __init__(self, db: Session, policy: Optional[TaxPolicy] = None):
        self.db = db
        self.policy = policy or get_tax_policy()
        self.items = LineItemStore(db)
        self.quotes = QuoteRepository(db)

    def recompute(self, quote: models.Quote) -> Aggregates:
        """Re-read all items of the quote and write fresh aggregates onto its header."""
        items = self.items.list_by_quote(quote.id)
        # The policy sees the header before it is overwritten (prior subtotal/tax)
        aggregates = compute_aggregates(
            (i.total_price for i in items),
            lambda subtotal: self.policy.resolve(quote, subtotal),
        )
        self.quotes.apply_aggregates(quote, aggregates)
        logger.info(
            f"Recomputed quote {quote.id} [{self.policy.name}] items={len(items)} "
            f"subtotal={aggregates.subtotal} tax={aggregates.tax} total={aggregates.total}"
        )
        return aggregates


class QuoteLedger:
    """Transactional unit of work for everything that touches a quote's items."""

    def __init__(self, db: Session, policy: Optional[TaxPolicy] = None, max_attempts: Optional[int] = None):
        self.db = db
        self.policy = policy or get_tax_policy()
        self.max_attempts = max_attempts or settings.LEDGER_MAX_ATTEMPTS
        self.items = LineItemStore(db)
        self.quotes = QuoteRepository(db)
        self.recalculator = LedgerRecalculator(db, self.policy)

    def run(self, quote_id: int, mutation: Callable[[models.Quote], object], recompute: bool = True):
        """
        Run `mutation(quote)` and the recomputation as one transaction.

        Any exception rolls the whole unit back. StaleDataError (the header
        version moved under us) restarts the unit with fresh state, up to
        max_attempts; after that the caller gets a Conflict.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                quote = self.quotes.get(quote_id, for_update=True)
                result = mutation(quote)
                if recompute:
                    self.recalculator.recompute(quote)
                self.db.commit()
                return result
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    f"Quote {quote_id} changed concurrently, retrying ({attempt}/{self.max_attempts})"
                )
            except Exception:
                self.db.rollback()
                raise
        raise Conflict(
            "Quote was modified concurrently, please retry",
            "CONCURRENT_MODIFICATION",
        )

    # --- Quote header ---

    def open_quote(self, company_id: int, issue_date, valid_until_date, items: Iterable[dict] = (),
                   quote_number: Optional[str] = None, notes: Optional[str] = None,
                   status=models.QuoteStatus.DRAFT) -> models.Quote:
        """Create a quote with its initial items; aggregates come from those items only."""
        quote_number = (quote_number or "").strip() or self.quotes.generate_quote_number()
        try:
            quote = self.quotes.create(
                company_id, issue_date, valid_until_date,
                quote_number=quote_number, notes=notes, status=status,
            )
            for item in items:
                self.items.add(
                    quote, item["quantity"], item["unit_price"], item["description"],
                    item.get("health_test_id"),
                )
            self.recalculator.recompute(quote)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            # Lost a race on the unique quote_number index; anything else propagates
            if self.quotes.quote_number_taken(quote_number):
                raise Conflict("Quote number already exists", "DUPLICATE_QUOTE_NUMBER")
            raise
        except Exception:
            self.db.rollback()
            raise
        return quote

    def update_header(self, quote_id: int, changes: dict) -> models.Quote:
        """Dates, notes and status. Money fields are not writable here."""
        def apply(quote):
            issue_date = changes.get("issue_date", quote.issue_date)
            valid_until = changes.get("valid_until_date", quote.valid_until_date)
            if issue_date is None or valid_until is None:
                raise ValidationFailed("Quote dates cannot be null", "INVALID_DATE")
            if valid_until < issue_date:
                raise ValidationFailed("Valid until date cannot be before issue date", "INVALID_DATE_RANGE")
            quote.issue_date = issue_date
            quote.valid_until_date = valid_until
            if "notes" in changes:
                quote.notes = (changes["notes"] or "").strip() or None
            if changes.get("status") is not None:
                self.quotes.change_status(quote, changes["status"])
            quote.updated_at = datetime.utcnow()
            self.db.flush()
            return quote
        return self.run(quote_id, apply, recompute=False)

    # --- Item operations ---

    def add_item(self, quote_id: int, quantity: int, unit_price: float, description: str,
                 health_test_id: Optional[int] = None) -> models.QuoteItem:
        return self.run(
            quote_id,
            lambda quote: self.items.add(quote, quantity, unit_price, description, health_test_id),
        )

    def update_item(self, item_id: int, changes: dict, quote_id: Optional[int] = None) -> models.QuoteItem:
        """Update an item. Without quote_id the owning quote is looked up from the item."""
        owner_id = quote_id if quote_id is not None else self.items.get(item_id).quote_id
        return self.run(owner_id, lambda quote: self.items.update(item_id, changes, quote_id=owner_id))

    def delete_item(self, item_id: int, quote_id: Optional[int] = None) -> dict:
        owner_id = quote_id if quote_id is not None else self.items.get(item_id).quote_id
        return self.run(owner_id, lambda quote: self.items.delete(item_id, quote_id=owner_id))

    def recalculate(self, quote_id: int) -> models.Quote:
        return self.run(quote_id, lambda quote: quote)


def get_ledger(db: Session = Depends(get_db)) -> QuoteLedger:
    return QuoteLedger(db)
