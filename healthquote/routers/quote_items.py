from fastapi import APIRouter, Depends

from ..ledger import QuoteLedger, get_ledger
from ..line_items import item_to_dict
from .. import schemas

router = APIRouter(prefix="/quotes/{quote_id}/items", tags=["quote-items"])


@router.get("")
def list_items(quote_id: int, ledger: QuoteLedger = Depends(get_ledger)):
    ledger.quotes.get(quote_id)
    return [item_to_dict(i) for i in ledger.items.list_by_quote(quote_id)]


@router.post("", status_code=201)
def add_item(quote_id: int, item: schemas.QuoteItemCreate, ledger: QuoteLedger = Depends(get_ledger)):
    db_item = ledger.add_item(
        quote_id,
        quantity=item.quantity,
        unit_price=item.unit_price,
        description=item.description,
        health_test_id=item.health_test_id,
    )
    return item_to_dict(db_item)


@router.patch("/{item_id}")
def update_item(
    quote_id: int,
    item_id: int,
    update: schemas.QuoteItemUpdate,
    ledger: QuoteLedger = Depends(get_ledger),
):
    db_item = ledger.update_item(item_id, update.model_dump(exclude_unset=True), quote_id=quote_id)
    return item_to_dict(db_item)


@router.delete("/{item_id}")
def delete_item(quote_id: int, item_id: int, ledger: QuoteLedger = Depends(get_ledger)):
    removed = ledger.delete_item(item_id, quote_id=quote_id)
    return {"message": "Quote item deleted successfully", "item": removed}
