from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from database import (
    BorrowedDatabase,
    DatabaseHandle,
    DatabaseService,
    OwnedDatabase,
    PathLike,
)
from errors import ConflictError, DisposedError, InvalidArgumentError, NotFoundError
from models import Category, CategoryType, Transaction
from schemas import CENTS, CategoryIn, TransactionIn, category_type_by_name

logger = logging.getLogger(__name__)

EARLIEST = datetime(1900, 1, 1)
LATEST = datetime(2500, 1, 1)
TOTALS_LABEL = "TOTALS"

DEFAULT_CATEGORIES: tuple[tuple[str, CategoryType], ...] = (
    ("Utilities", CategoryType.expense),
    ("Food & Dining", CategoryType.expense),
    ("Transportation", CategoryType.expense),
    ("Health & Personal Care", CategoryType.expense),
    ("Insurance", CategoryType.expense),
    ("Clothes", CategoryType.expense),
    ("Education", CategoryType.expense),
    ("Vacation", CategoryType.expense),
    ("Social Expenses", CategoryType.expense),
    ("Municipal & School Tax", CategoryType.expense),
    ("Rental Expenses", CategoryType.expense),
    ("Miscellaneous", CategoryType.expense),
    ("Savings", CategoryType.savings),
    ("Housing mortgage", CategoryType.debt),
    ("Auto loan", CategoryType.debt),
    ("Salary", CategoryType.income),
    ("Rental Income", CategoryType.income),
    ("Stock & Fund", CategoryType.investment),
)

DateBound = Optional[Union[date, datetime]]


def _validated(schema: type[BaseModel], **values: object) -> BaseModel:
    try:
        return schema(**values)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        ]
        raise InvalidArgumentError("; ".join(errors)) from exc


def _category_type(value: object) -> CategoryType:
    try:
        return CategoryType(category_type_by_name(value))
    except ValueError as exc:
        raise InvalidArgumentError(f"Unknown category type: {value!r}") from exc


def _lower_bound(value: DateBound) -> datetime:
    if value is None:
        return EARLIEST
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _upper_bound(value: DateBound) -> datetime:
    # A bare date means "through the end of that day"
    if value is None:
        return LATEST
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max)


def _money(value: object) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


def signed_amount(amount: Decimal, category_type: CategoryType) -> Decimal:
    """Income counts up; every other category type counts down."""
    if category_type == CategoryType.income:
        return amount
    return -amount


@dataclass
class BudgetItem:
    category_id: int
    transaction_id: int
    date: datetime
    category: str
    category_type: CategoryType
    description: Optional[str]
    amount: Decimal
    balance: Decimal
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class BudgetItemsByMonth:
    month: str
    total: Decimal
    details: list[BudgetItem] = field(default_factory=list)


@dataclass
class BudgetItemsByCategory:
    category: str
    total: Decimal
    details: list[BudgetItem] = field(default_factory=list)


@dataclass
class CategoryMonthSummary:
    category: str
    total: Decimal
    details: list[BudgetItem] = field(default_factory=list)


@dataclass
class MonthlyCategoryBreakdown:
    month: str
    total: Decimal
    categories: list[CategoryMonthSummary] = field(default_factory=list)


@dataclass
class CategoryTotal:
    category: str
    total: Decimal


@dataclass
class CategoryTotalsRow:
    label: str = TOTALS_LABEL
    totals: list[CategoryTotal] = field(default_factory=list)


@dataclass
class CategoryByMonthReport:
    months: list[MonthlyCategoryBreakdown]
    totals: CategoryTotalsRow


@dataclass
class CreatorStatistics:
    created_by: Optional[str]
    transaction_count: int
    net_total: Decimal
    income_total: Decimal
    non_income_total: Decimal


def _connect(path: PathLike, is_new: bool) -> OwnedDatabase:
    if is_new:
        return OwnedDatabase(DatabaseService.create(path))
    return OwnedDatabase(DatabaseService.open(path))


class DatabaseBoundService:
    """
    Shared lifecycle for the stores and the report facade.

    Built around a ``DatabaseService`` the service only borrows it; built
    through ``open(path)`` it owns the database and closes it on ``close``.
    """

    def __init__(self, database: Union[DatabaseService, DatabaseHandle]) -> None:
        if isinstance(database, DatabaseHandle):
            self._handle = database
        else:
            self._handle = BorrowedDatabase(database)
        self._closed = False

    @property
    def database(self) -> DatabaseService:
        self._ensure_open()
        return self._handle.database

    @property
    def owns_database(self) -> bool:
        return isinstance(self._handle, OwnedDatabase)

    @property
    def is_connected(self) -> bool:
        return not self._closed and self._handle.database.is_connected

    @property
    def database_path(self) -> Path:
        return self.database.path.resolve()

    def _ensure_open(self) -> None:
        if self._closed:
            raise DisposedError(type(self).__name__)

    def _scope(self, operation: str):
        self._ensure_open()
        return self._handle.database.scope(operation)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._handle.release()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class CategoryService(DatabaseBoundService):
    @classmethod
    def open(cls, path: PathLike, is_new: bool = False) -> "CategoryService":
        service = cls(_connect(path, is_new))
        if is_new:
            service.set_defaults()
        return service

    def add(self, name: str, category_type: CategoryType) -> int:
        self._ensure_open()
        data = _validated(CategoryIn, name=name, type=category_type)
        with self._scope("Add category") as session:
            category = Category(name=data.name, type_id=data.type.value)
            session.add(category)
            session.flush()
            category_id = category.id
        logger.debug(f"category_added: id={category_id} type={data.type.label}")
        return category_id

    def delete(self, category_id: int) -> None:
        with self._scope("Delete category") as session:
            in_use = session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.category_id == category_id
                )
            ).scalar_one()
            if in_use:
                raise ConflictError(
                    f"Cannot delete category with {in_use} associated transactions. "
                    "Delete the transactions first."
                )
            category = session.get(Category, category_id)
            if category is None:
                raise NotFoundError(f"Category with ID {category_id} not found")
            session.delete(category)
        logger.debug(f"category_deleted: id={category_id}")

    def update(self, category_id: int, name: str, category_type: CategoryType) -> None:
        self._ensure_open()
        data = _validated(CategoryIn, name=name, type=category_type)
        with self._scope("Update category") as session:
            category = session.get(Category, category_id)
            if category is None:
                raise NotFoundError(f"Category with ID {category_id} not found")
            category.name = data.name
            category.type_id = data.type.value
        logger.debug(f"category_updated: id={category_id}")

    def get(self, category_id: int) -> Optional[Category]:
        with self._scope("Get category") as session:
            return session.get(Category, category_id)

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.type_id, Category.name)
        with self._scope("List categories") as session:
            return list(session.scalars(stmt).all())

    def list_by_type(self, category_type: CategoryType) -> list[Category]:
        self._ensure_open()
        wanted = _category_type(category_type)
        stmt = (
            select(Category)
            .where(Category.type_id == wanted.value)
            .order_by(Category.name)
        )
        with self._scope("List categories by type") as session:
            return list(session.scalars(stmt).all())

    def count(self) -> int:
        with self._scope("Count categories") as session:
            return session.execute(select(func.count(Category.id))).scalar_one()

    def set_defaults(self) -> None:
        with self._scope("Set default categories") as session:
            existing = session.execute(select(func.count(Category.id))).scalar_one()
            if existing:
                raise ConflictError("Categories already exist")
            session.add_all(
                Category(name=name, type_id=category_type.value)
                for name, category_type in DEFAULT_CATEGORIES
            )
        logger.info(f"default_categories_seeded: count={len(DEFAULT_CATEGORIES)}")


class TransactionService(DatabaseBoundService):
    @classmethod
    def open(cls, path: PathLike, is_new: bool = False) -> "TransactionService":
        return cls(_connect(path, is_new))

    @staticmethod
    def _require_category(session: Session, category_id: int) -> None:
        if session.get(Category, category_id) is None:
            raise NotFoundError(f"Category with ID {category_id} not found")

    def add(
        self,
        transaction_date: Union[date, datetime],
        category_id: int,
        amount: Union[Decimal, int, float, str],
        description: str,
        created_by: str,
        created_at: Optional[datetime] = None,
    ) -> int:
        self._ensure_open()
        data = _validated(
            TransactionIn,
            transaction_date=transaction_date,
            category_id=category_id,
            amount=amount,
            description=description,
            created_by=created_by,
            created_at=created_at,
        )
        with self._scope("Add transaction") as session:
            self._require_category(session, data.category_id)
            txn = Transaction(
                transaction_date=data.transaction_date,
                category_id=data.category_id,
                amount=data.amount,
                description=data.description,
                created_by=data.created_by,
                created_at=data.created_at or datetime.now(),
            )
            session.add(txn)
            session.flush()
            transaction_id = txn.id
        logger.debug(
            f"transaction_added: id={transaction_id} category_id={data.category_id} "
            f"created_by={data.created_by}"
        )
        return transaction_id

    def delete(self, transaction_id: int) -> None:
        with self._scope("Delete transaction") as session:
            txn = session.get(Transaction, transaction_id)
            if txn is None:
                raise NotFoundError(f"Transaction with ID {transaction_id} not found")
            session.delete(txn)
        logger.debug(f"transaction_deleted: id={transaction_id}")

    def update(
        self,
        transaction_id: int,
        transaction_date: Union[date, datetime],
        description: str,
        amount: Union[Decimal, int, float, str],
        category_id: int,
        created_by: str,
    ) -> None:
        self._ensure_open()
        data = _validated(
            TransactionIn,
            transaction_date=transaction_date,
            category_id=category_id,
            amount=amount,
            description=description,
            created_by=created_by,
        )
        with self._scope("Update transaction") as session:
            txn = session.get(Transaction, transaction_id)
            if txn is None:
                raise NotFoundError(f"Transaction with ID {transaction_id} not found")
            self._require_category(session, data.category_id)
            txn.transaction_date = data.transaction_date
            txn.description = data.description
            txn.amount = data.amount
            txn.category_id = data.category_id
            txn.created_by = data.created_by
        logger.debug(f"transaction_updated: id={transaction_id}")

    def get(self, transaction_id: int) -> Optional[Transaction]:
        with self._scope("Get transaction") as session:
            return session.get(Transaction, transaction_id)

    def _newest_first(self, operation: str, *criteria) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(*criteria)
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        )
        with self._scope(operation) as session:
            return list(session.scalars(stmt).all())

    def list_all(self) -> list[Transaction]:
        return self._newest_first("List transactions")

    def list_by_created_by(self, created_by: str) -> list[Transaction]:
        return self._newest_first(
            "List transactions by creator", Transaction.created_by == created_by
        )

    def list_by_date_range(self, start: DateBound, end: DateBound) -> list[Transaction]:
        return self._newest_first(
            "List transactions by date range",
            Transaction.transaction_date.between(_lower_bound(start), _upper_bound(end)),
        )


def _group_by_category(items: list[BudgetItem]) -> list[BudgetItemsByCategory]:
    groups: dict[str, list[BudgetItem]] = {}
    for item in items:
        groups.setdefault(item.category, []).append(item)
    return [
        BudgetItemsByCategory(
            category=name,
            total=sum((i.amount for i in details), Decimal("0.00")),
            details=details,
        )
        for name, details in sorted(groups.items(), key=lambda kv: kv[0])
    ]


class ReportService(DatabaseBoundService):
    """
    Read-side views over transactions joined to their categories.

    Amounts are signed by category type (income positive, everything else
    negative) and each item carries the running balance of the result set it
    belongs to, in transaction date then id order.
    """

    def __init__(self, database: Union[DatabaseService, DatabaseHandle]) -> None:
        super().__init__(database)
        shared = self._handle.database
        self.categories = CategoryService(shared)
        self.transactions = TransactionService(shared)

    @classmethod
    def open(cls, path: PathLike, is_new: bool = False) -> "ReportService":
        budget = cls(_connect(path, is_new))
        if is_new:
            budget.categories.set_defaults()
        return budget

    def close(self) -> None:
        if not self._closed:
            self.categories.close()
            self.transactions.close()
        super().close()

    def _budget_items(
        self, operation: str, start: DateBound, end: DateBound, *criteria
    ) -> list[BudgetItem]:
        stmt = (
            select(Transaction, Category)
            .join(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.transaction_date.between(
                    _lower_bound(start), _upper_bound(end)
                ),
                *criteria,
            )
            .order_by(Transaction.transaction_date, Transaction.id)
        )
        with self._scope(operation) as session:
            rows = session.execute(stmt).all()

        items: list[BudgetItem] = []
        balance = Decimal("0.00")
        for txn, category in rows:
            amount = signed_amount(txn.amount, category.type)
            balance += amount
            items.append(
                BudgetItem(
                    category_id=category.id,
                    transaction_id=txn.id,
                    date=txn.transaction_date,
                    category=category.name,
                    category_type=category.type,
                    description=txn.description,
                    amount=amount,
                    balance=balance,
                    created_by=txn.created_by,
                    created_at=txn.created_at,
                )
            )
        return items

    def get_budget_items(
        self,
        start: DateBound = None,
        end: DateBound = None,
        filter_by_category: bool = False,
        category_id: int = 0,
    ) -> list[BudgetItem]:
        criteria = []
        if filter_by_category:
            criteria.append(Category.id == category_id)
        return self._budget_items("Get budget items", start, end, *criteria)

    def get_budget_items_by_month(
        self,
        start: DateBound = None,
        end: DateBound = None,
        filter_by_category: bool = False,
        category_id: int = 0,
    ) -> list[BudgetItemsByMonth]:
        items = self.get_budget_items(start, end, filter_by_category, category_id)
        groups: dict[str, list[BudgetItem]] = {}
        for item in items:
            key = f"{item.date.year:04d}/{item.date.month:02d}"
            groups.setdefault(key, []).append(item)
        return [
            BudgetItemsByMonth(
                month=month,
                total=sum((i.amount for i in details), Decimal("0.00")),
                details=details,
            )
            for month, details in groups.items()
        ]

    def get_budget_items_by_category(
        self,
        start: DateBound = None,
        end: DateBound = None,
        filter_by_category: bool = False,
        category_id: int = 0,
    ) -> list[BudgetItemsByCategory]:
        items = self.get_budget_items(start, end, filter_by_category, category_id)
        return _group_by_category(items)

    def get_budget_by_category_and_month(
        self,
        start: DateBound = None,
        end: DateBound = None,
        filter_by_category: bool = False,
        category_id: int = 0,
    ) -> CategoryByMonthReport:
        months: list[MonthlyCategoryBreakdown] = []
        running: dict[str, Decimal] = {}
        by_month = self.get_budget_items_by_month(
            start, end, filter_by_category, category_id
        )
        for month in by_month:
            summaries = []
            for group in _group_by_category(month.details):
                summaries.append(
                    CategoryMonthSummary(
                        category=group.category,
                        total=group.total,
                        details=group.details,
                    )
                )
                running[group.category] = (
                    running.get(group.category, Decimal("0.00")) + group.total
                )
            months.append(
                MonthlyCategoryBreakdown(
                    month=month.month, total=month.total, categories=summaries
                )
            )

        totals: list[CategoryTotal] = []
        for category in self.categories.list_all():
            if category.name in running:
                totals.append(CategoryTotal(category.name, running.pop(category.name)))
        return CategoryByMonthReport(months=months, totals=CategoryTotalsRow(totals=totals))

    def get_budget_items_by_created_by(
        self,
        created_by: str,
        start: DateBound = None,
        end: DateBound = None,
    ) -> list[BudgetItem]:
        self._ensure_open()
        if not created_by or not created_by.strip():
            raise InvalidArgumentError("CreatedBy cannot be null or empty")
        return self._budget_items(
            "Get budget items by creator",
            start,
            end,
            Transaction.created_by == created_by,
        )

    def get_created_by_statistics(
        self, start: DateBound = None, end: DateBound = None
    ) -> list[CreatorStatistics]:
        is_income = Category.type_id == CategoryType.income.value
        stmt = (
            select(
                Transaction.created_by.label("created_by"),
                func.count(Transaction.id).label("transaction_count"),
                func.coalesce(
                    func.sum(case((is_income, Transaction.amount), else_=0)), 0
                ).label("income_total"),
                func.coalesce(func.sum(Transaction.amount), 0).label("gross_total"),
            )
            .join(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.transaction_date.between(
                    _lower_bound(start), _upper_bound(end)
                )
            )
            .group_by(Transaction.created_by)
            .order_by(Transaction.created_by)
        )
        with self._scope("Get creator statistics") as session:
            rows = session.execute(stmt).all()

        stats = []
        for row in rows:
            income = _money(row.income_total)
            non_income = _money(row.gross_total) - income
            stats.append(
                CreatorStatistics(
                    created_by=row.created_by,
                    transaction_count=int(row.transaction_count),
                    net_total=income - non_income,
                    income_total=income,
                    non_income_total=non_income,
                )
            )
        return stats
