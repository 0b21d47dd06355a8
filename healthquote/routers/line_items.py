"""
Quote-agnostic item endpoints. The owning quote is found from the item.

Both return the full quote read model so a client editing a line in place
can refresh totals without a second request.
"""

from fastapi import APIRouter, Depends

from ..errors import ValidationFailed
from ..ledger import QuoteLedger, get_ledger
from ..quote_repository import quote_to_dict
from .. import schemas

router = APIRouter(prefix="/quote-items", tags=["quote-items"])


def _read_owner(ledger: QuoteLedger, quote_id: int) -> dict:
    quote = ledger.quotes.get(quote_id)
    return quote_to_dict(quote, ledger.items.list_by_quote(quote_id))


@router.patch("/{item_id}")
def update_item_price(item_id: int, update: schemas.QuoteItemPriceUpdate, ledger: QuoteLedger = Depends(get_ledger)):
    changes = update.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationFailed("No valid fields to update", "NO_UPDATES")
    db_item = ledger.update_item(item_id, changes)
    return _read_owner(ledger, db_item.quote_id)


@router.delete("/{item_id}")
def delete_item(item_id: int, ledger: QuoteLedger = Depends(get_ledger)):
    removed = ledger.delete_item(item_id)
    return _read_owner(ledger, removed["quoteId"])
