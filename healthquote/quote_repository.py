import logging
from datetime import datetime, date
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .config import settings
from .errors import Conflict, NotFound, ValidationFailed
from .line_items import item_to_dict

logger = logging.getLogger("healthquote.quotes")


class QuoteRepository:
    """Quote header persistence. Aggregates are written here and nowhere else."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, quote_id: int, for_update: bool = False) -> models.Quote:
        query = self.db.query(models.Quote).filter(models.Quote.id == quote_id)
        if for_update:
            # Row lock where the engine has one (PostgreSQL, MySQL); SQLite relies on the version column
            query = query.with_for_update()
        quote = query.first()
        if not quote:
            raise NotFound("Quote not found", "QUOTE_NOT_FOUND")
        return quote

    def apply_aggregates(self, quote: models.Quote, aggregates) -> models.Quote:
        quote.subtotal = float(aggregates.subtotal)
        quote.tax = float(aggregates.tax)
        quote.total = float(aggregates.total)
        quote.updated_at = datetime.utcnow()
        self.db.flush()
        return quote

    def quote_number_taken(self, quote_number: str) -> bool:
        return self.db.query(models.Quote.id).filter(
            models.Quote.quote_number == quote_number
        ).first() is not None

    def generate_quote_number(self, today: Optional[date] = None) -> str:
        """QT-YYYYMMDD-NNN, first free sequence number for the day."""
        today = today or datetime.utcnow().date()
        prefix = f"{settings.QUOTE_NUMBER_PREFIX}-{today.strftime('%Y%m%d')}-"
        issued = self.db.query(models.Quote).filter(
            models.Quote.quote_number.like(f"{prefix}%")
        ).count()
        seq = issued + 1
        while self.quote_number_taken(f"{prefix}{str(seq).zfill(3)}"):
            seq += 1
        return f"{prefix}{str(seq).zfill(3)}"

    def create(
        self,
        company_id: int,
        issue_date: date,
        valid_until_date: date,
        quote_number: Optional[str] = None,
        notes: Optional[str] = None,
        status: models.QuoteStatus = models.QuoteStatus.DRAFT,
    ) -> models.Quote:
        """Insert an empty quote header. Aggregates start at zero and are derived from items."""
        company = self.db.query(models.Company).filter(models.Company.id == company_id).first()
        if not company:
            raise NotFound("Company not found", "COMPANY_NOT_FOUND")
        if valid_until_date < issue_date:
            raise ValidationFailed("Valid until date cannot be before issue date", "INVALID_DATE_RANGE")
        status = self.initial_status(status)

        quote_number = (quote_number or "").strip() or self.generate_quote_number()
        if self.quote_number_taken(quote_number):
            raise Conflict("Quote number already exists", "DUPLICATE_QUOTE_NUMBER")

        now = datetime.utcnow()
        quote = models.Quote(
            company_id=company_id,
            quote_number=quote_number,
            issue_date=issue_date,
            valid_until_date=valid_until_date,
            subtotal=0.0,
            tax=0.0,
            total=0.0,
            notes=(notes or "").strip() or None,
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(quote)
        self.db.flush()
        logger.info(f"Created quote {quote.quote_number} (id={quote.id}) for company {company_id}")
        return quote

    @staticmethod
    def _parse_status(status) -> models.QuoteStatus:
        try:
            return models.QuoteStatus(status)
        except ValueError:
            valid = ", ".join(s.value for s in models.QuoteStatus)
            raise ValidationFailed(f"Status must be one of: {valid}", "INVALID_STATUS")

    def initial_status(self, status) -> models.QuoteStatus:
        """New quotes start as draft, or one step on from it when transitions are enforced."""
        status = self._parse_status(status)
        allowed = {models.QuoteStatus.DRAFT} | models.STATUS_TRANSITIONS[models.QuoteStatus.DRAFT]
        if settings.ENFORCE_STATUS_TRANSITIONS and status not in allowed:
            raise ValidationFailed(
                f"A new quote cannot start as '{status.value}'",
                "INVALID_STATUS_TRANSITION",
            )
        return status

    def change_status(self, quote: models.Quote, status) -> models.Quote:
        """Move a quote to a new status, honouring STATUS_TRANSITIONS when enforced."""
        new_status = self._parse_status(status)

        current = models.QuoteStatus(quote.status)
        if new_status == current:
            return quote
        if settings.ENFORCE_STATUS_TRANSITIONS and new_status not in models.STATUS_TRANSITIONS[current]:
            raise ValidationFailed(
                f"Cannot move quote from '{current.value}' to '{new_status.value}'",
                "INVALID_STATUS_TRANSITION",
            )
        quote.status = new_status.value
        quote.updated_at = datetime.utcnow()
        return quote


def quote_to_dict(q: models.Quote, items=None) -> dict:
    """Quote header joined with its company and current items."""
    if items is None:
        items = q.items
    return {
        "id": q.id,
        "companyId": q.company_id,
        "quoteNumber": q.quote_number,
        "issueDate": q.issue_date.isoformat() if q.issue_date else None,
        "validUntilDate": q.valid_until_date.isoformat() if q.valid_until_date else None,
        "subtotal": q.subtotal,
        "tax": q.tax,
        "total": q.total,
        "notes": q.notes,
        "status": q.status,
        "createdAt": q.created_at.isoformat() if q.created_at else None,
        "updatedAt": q.updated_at.isoformat() if q.updated_at else None,
        "company": {
            "id": q.company.id,
            "name": q.company.name,
            "address": q.company.address,
            "contactPerson": q.company.contact_person,
            "phone": q.company.phone,
            "email": q.company.email,
        } if q.company else None,
        "items": [item_to_dict(i) for i in items],
    }
