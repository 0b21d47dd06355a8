from fastapi import APIRouter, Depends

from ..ledger import QuoteLedger, get_ledger
from ..quote_repository import quote_to_dict
from .. import schemas

router = APIRouter(prefix="/quotes", tags=["quotes"])


def _read_quote(ledger: QuoteLedger, quote_id: int) -> dict:
    quote = ledger.quotes.get(quote_id)
    return quote_to_dict(quote, ledger.items.list_by_quote(quote_id))


@router.post("", status_code=201)
def create_quote(quote: schemas.QuoteCreate, ledger: QuoteLedger = Depends(get_ledger)):
    """Create a quote with optional initial items. Money fields are derived, never supplied."""
    db_quote = ledger.open_quote(
        company_id=quote.company_id,
        issue_date=quote.issue_date,
        valid_until_date=quote.valid_until_date,
        items=[item.model_dump() for item in quote.items],
        quote_number=quote.quote_number,
        notes=quote.notes,
        status=quote.status,
    )
    return _read_quote(ledger, db_quote.id)


@router.get("/{quote_id}")
def get_quote(quote_id: int, ledger: QuoteLedger = Depends(get_ledger)):
    return _read_quote(ledger, quote_id)


@router.patch("/{quote_id}")
def update_quote(quote_id: int, update: schemas.QuoteUpdate, ledger: QuoteLedger = Depends(get_ledger)):
    ledger.update_header(quote_id, update.model_dump(exclude_unset=True))
    return _read_quote(ledger, quote_id)


@router.post("/{quote_id}/recalculate")
def recalculate_quote(quote_id: int, ledger: QuoteLedger = Depends(get_ledger)):
    """Rebuild subtotal/tax/total from the current items. Repairs headers written before the ledger existed."""
    ledger.recalculate(quote_id)
    return _read_quote(ledger, quote_id)
