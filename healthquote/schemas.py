from pydantic import BaseModel, Field, StrictFloat, StrictInt, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import date
from .line_items import MAX_QUANTITY, MAX_UNIT_PRICE
from .models import QuoteStatus

# Largest value a signed 64-bit INTEGER key column can hold
MAX_ID = 2 ** 63 - 1


class CamelModel(BaseModel):
    """Request bodies speak camelCase on the wire, snake_case in Python."""
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"


def _clean_description(value):
    if value is None:
        return value
    if not value.strip():
        raise ValueError("Description cannot be empty")
    return value.strip()


# --- Quote items ---

class QuoteItemCreate(CamelModel):
    quantity: StrictInt = Field(gt=0, le=MAX_QUANTITY)
    unit_price: StrictFloat = Field(gt=0, le=MAX_UNIT_PRICE, allow_inf_nan=False)
    description: str
    health_test_id: Optional[StrictInt] = Field(default=None, le=MAX_ID)

    @field_validator("description")
    @classmethod
    def strip_description(cls, value):
        return _clean_description(value)


class QuoteItemUpdate(CamelModel):
    """Partial update. Only fields present in the body are applied."""
    quantity: Optional[StrictInt] = Field(default=None, gt=0, le=MAX_QUANTITY)
    unit_price: Optional[StrictFloat] = Field(default=None, gt=0, le=MAX_UNIT_PRICE, allow_inf_nan=False)
    description: Optional[str] = None
    health_test_id: Optional[StrictInt] = Field(default=None, le=MAX_ID)

    @field_validator("description")
    @classmethod
    def strip_description(cls, value):
        return _clean_description(value)

    @model_validator(mode="after")
    def no_explicit_nulls(self):
        # healthTestId: null clears the link; the other fields cannot be nulled
        for field in ("quantity", "unit_price", "description"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{to_camel(field)} cannot be null")
        return self


class QuoteItemPriceUpdate(CamelModel):
    """Body of the quote-agnostic PATCH /quote-items/{id}."""
    quantity: Optional[StrictInt] = Field(default=None, gt=0, le=MAX_QUANTITY)
    unit_price: Optional[StrictFloat] = Field(default=None, gt=0, le=MAX_UNIT_PRICE, allow_inf_nan=False)


# --- Quotes ---

class QuoteCreate(CamelModel):
    company_id: StrictInt = Field(gt=0, le=MAX_ID)
    quote_number: Optional[str] = None
    issue_date: date
    valid_until_date: date
    notes: Optional[str] = None
    status: QuoteStatus = QuoteStatus.DRAFT
    items: List[QuoteItemCreate] = []


class QuoteUpdate(CamelModel):
    issue_date: Optional[date] = None
    valid_until_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[QuoteStatus] = None
