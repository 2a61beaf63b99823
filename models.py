from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class CategoryType(int, Enum):
    income = 1
    expense = 2
    debt = 3
    investment = 4
    savings = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()


class CategoryTypeRecord(Base):
    __tablename__ = "categoryTypes"

    id: Mapped[int] = mapped_column("Id", Integer, primary_key=True)
    description: Mapped[str] = mapped_column("Description", Text, nullable=False)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column("Id", Integer, primary_key=True)
    name: Mapped[str] = mapped_column("Name", Text, nullable=False)
    type_id: Mapped[int] = mapped_column(
        "TypeId", ForeignKey("categoryTypes.Id"), nullable=False
    )

    __table_args__ = (Index("ix_categories_type", "TypeId"),)

    @property
    def type(self) -> CategoryType:
        return CategoryType(self.type_id)

    def __str__(self) -> str:
        return self.name


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column("Id", Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(
        "CategoryId", ForeignKey("categories.Id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(
        "Amount", Numeric(10, 2, asdecimal=True), nullable=False
    )
    transaction_date: Mapped[datetime] = mapped_column(
        "TransactionDate", DateTime, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column("Description", Text)
    created_by: Mapped[Optional[str]] = mapped_column("CreatedBy", Text)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        "CreatedAt", DateTime, default=datetime.now
    )

    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        Index("ix_transactions_date_id", "TransactionDate", "Id"),
        Index("ix_transactions_category", "CategoryId"),
        Index("ix_transactions_created_by", "CreatedBy"),
    )

    def __str__(self) -> str:
        return (
            f"{self.transaction_date:%Y-%m-%d} - {self.description}: "
            f"${self.amount} (by {self.created_by})"
        )
