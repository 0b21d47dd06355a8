from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Text, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base
import enum


class QuoteStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Allowed status moves when ENFORCE_STATUS_TRANSITIONS is on.
# Accepted quotes are final; a rejected quote can be reopened as a draft.
STATUS_TRANSITIONS = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.DRAFT},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: {QuoteStatus.DRAFT},
}


# --- Reference tables (managed elsewhere, read here) ---

class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(Text, nullable=False, default="")
    contact_person = Column(String, nullable=False, default="")
    phone = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)

    quotes = relationship("Quote", back_populates="company", cascade="all, delete-orphan", passive_deletes=True)


class HealthTest(Base):
    """Catalog of screenings a quote line can point at."""
    __tablename__ = "health_tests"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    code = Column(String, nullable=True)
    price = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# --- Ledger tables ---

class Quote(Base):
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    quote_number = Column(String, unique=True, nullable=False)
    issue_date = Column(Date, nullable=False)
    valid_until_date = Column(Date, nullable=False)
    # Derived from items, written only by LedgerRecalculator
    subtotal = Column(Float, nullable=False, default=0.0)
    tax = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=QuoteStatus.DRAFT.value)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    # Optimistic lock: every header UPDATE carries "WHERE version = :old"
    version = Column(Integer, nullable=False, default=1)

    company = relationship("Company", back_populates="quotes")
    items = relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="QuoteItem.id",
    )

    __mapper_args__ = {"version_id_col": version}


class QuoteItem(Base):
    __tablename__ = "quote_items"

    id = Column(Integer, primary_key=True, index=True)
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    health_test_id = Column(Integer, ForeignKey("health_tests.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    quote = relationship("Quote", back_populates="items")
    health_test = relationship("HealthTest")
