from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import CategoryType

CENTS = Decimal("0.01")
# Amounts are stored as NUMERIC(10, 2)
AMOUNT_LIMIT = Decimal("100000000")


def _midnight(value: object) -> object:
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    return value


def category_type_by_name(value: object) -> object:
    if isinstance(value, str) and value.strip().lower() in CategoryType.__members__:
        return CategoryType[value.strip().lower()]
    return value


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType

    @field_validator("type", mode="before")
    @classmethod
    def _type_by_name(cls, value: object) -> object:
        return category_type_by_name(value)


class TransactionIn(BaseModel):
    transaction_date: datetime
    category_id: int = Field(..., gt=0)
    amount: Decimal
    description: str = Field(..., min_length=1, max_length=500)
    created_by: str = Field(..., min_length=1, max_length=100)
    created_at: Optional[datetime] = None

    @field_validator("transaction_date", "created_at", mode="before")
    @classmethod
    def _dates_at_midnight(cls, value: object) -> object:
        return _midnight(value)

    @field_validator("transaction_date", "created_at")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @field_validator("amount")
    @classmethod
    def _amount_in_cents(cls, value: Decimal) -> Decimal:
        try:
            value = value.quantize(CENTS, rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            raise ValueError("Amount is out of range") from exc
        if value == 0:
            raise ValueError("Amount cannot be zero")
        if abs(value) >= AMOUNT_LIMIT:
            raise ValueError("Amount is out of range")
        return value

    @field_validator("description", "created_by")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Value cannot be blank")
        return value


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: CategoryType


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_date: datetime
    category_id: int
    amount: Decimal
    description: Optional[str]
    created_by: Optional[str]
    created_at: Optional[datetime]
