"""
Quote line item persistence.

The store never commits. Callers run it inside QuoteLedger so the item write
and the header recomputation land in the same transaction.
"""

import math
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from . import models
from .catalog import HealthTestCatalog
from .errors import NotFound, ValidationFailed
from .tax_policy import to_decimal

# Upper bounds keep quantity inside a 64-bit INTEGER column and line totals finite
MAX_QUANTITY = 1_000_000
MAX_UNIT_PRICE = 1_000_000_000


def line_total(quantity: int, unit_price: float) -> float:
    """quantity * unit_price as an exact decimal product."""
    total = float(to_decimal(quantity) * to_decimal(unit_price))
    if not math.isfinite(total):
        raise ValidationFailed("Line total is out of range", "INVALID_UNIT_PRICE")
    return total


def _check_quantity(quantity):
    if (isinstance(quantity, bool) or not isinstance(quantity, int)
            or quantity <= 0 or quantity > MAX_QUANTITY):
        raise ValidationFailed(
            f"Quantity must be a positive integer up to {MAX_QUANTITY}", "INVALID_QUANTITY"
        )


def _check_unit_price(unit_price):
    if (isinstance(unit_price, bool) or not isinstance(unit_price, (int, float))
            or not math.isfinite(unit_price) or unit_price <= 0 or unit_price > MAX_UNIT_PRICE):
        raise ValidationFailed(
            f"Unit price must be a positive number up to {MAX_UNIT_PRICE}", "INVALID_UNIT_PRICE"
        )


def _clean_description(description) -> str:
    if not isinstance(description, str) or not description.strip():
        raise ValidationFailed("Description cannot be empty", "INVALID_DESCRIPTION")
    return description.strip()


class LineItemStore:

    UPDATABLE_FIELDS = ("quantity", "unit_price", "description", "health_test_id")

    def __init__(self, db: Session, catalog: HealthTestCatalog = None):
        self.db = db
        self.catalog = catalog or HealthTestCatalog(db)

    def get(self, item_id: int, quote_id: Optional[int] = None) -> models.QuoteItem:
        """Fetch an item; when quote_id is given the item must belong to that quote."""
        query = self.db.query(models.QuoteItem).filter(models.QuoteItem.id == item_id)
        if quote_id is not None:
            query = query.filter(models.QuoteItem.quote_id == quote_id)
        item = query.first()
        if not item:
            detail = "Quote item not found"
            if quote_id is not None:
                detail = "Quote item not found or does not belong to this quote"
            raise NotFound(detail, "ITEM_NOT_FOUND")
        return item

    def list_by_quote(self, quote_id: int) -> List[models.QuoteItem]:
        return (
            self.db.query(models.QuoteItem)
            .filter(models.QuoteItem.quote_id == quote_id)
            .order_by(models.QuoteItem.created_at, models.QuoteItem.id)
            .all()
        )

    def add(
        self,
        quote: models.Quote,
        quantity: int,
        unit_price: float,
        description: str,
        health_test_id: Optional[int] = None,
    ) -> models.QuoteItem:
        _check_quantity(quantity)
        _check_unit_price(unit_price)
        description = _clean_description(description)
        if health_test_id is not None:
            self.catalog.get(health_test_id)  # NotFound propagates as 404

        now = datetime.utcnow()
        item = models.QuoteItem(
            quote_id=quote.id,
            health_test_id=health_test_id,
            quantity=quantity,
            unit_price=unit_price,
            total_price=line_total(quantity, unit_price),
            description=description,
            created_at=now,
            updated_at=now,
        )
        self.db.add(item)
        self.db.flush()
        return item

    def update(self, item_id: int, changes: dict, quote_id: Optional[int] = None) -> models.QuoteItem:
        """
        Apply a partial update.

        Only keys present in `changes` are validated and written. total_price
        is recomputed iff quantity or unit_price is among them, using the new
        value where given and the stored one otherwise.
        """
        item = self.get(item_id, quote_id)
        changes = {k: v for k, v in changes.items() if k in self.UPDATABLE_FIELDS}

        if "quantity" in changes:
            _check_quantity(changes["quantity"])
        if "unit_price" in changes:
            _check_unit_price(changes["unit_price"])
        if "description" in changes:
            changes["description"] = _clean_description(changes["description"])
        if changes.get("health_test_id") is not None:
            if not self.catalog.find(changes["health_test_id"]):
                raise ValidationFailed("Health test not found", "INVALID_HEALTH_TEST")

        for field, value in changes.items():
            setattr(item, field, value)
        if "quantity" in changes or "unit_price" in changes:
            item.total_price = line_total(item.quantity, item.unit_price)
        item.updated_at = datetime.utcnow()

        self.db.flush()
        if "health_test_id" in changes:
            self.db.expire(item, ["health_test"])
        return item

    def delete(self, item_id: int, quote_id: Optional[int] = None) -> dict:
        """Remove an item and return a snapshot of the deleted row."""
        item = self.get(item_id, quote_id)
        removed = item_to_dict(item)
        self.db.delete(item)
        self.db.flush()
        return removed


def item_to_dict(i: models.QuoteItem) -> dict:
    return {
        "id": i.id,
        "quoteId": i.quote_id,
        "healthTestId": i.health_test_id,
        "quantity": i.quantity,
        "unitPrice": i.unit_price,
        "totalPrice": i.total_price,
        "description": i.description,
        "createdAt": i.created_at.isoformat() if i.created_at else None,
        "updatedAt": i.updated_at.isoformat() if i.updated_at else None,
        "test": {
            "id": i.health_test.id,
            "name": i.health_test.name,
            "code": i.health_test.code,
        } if i.health_test_id and i.health_test else None,
    }
