import argparse
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from errors import BudgetError, DatabaseFileNotFoundError
from models import CategoryType
from services import ReportService

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "test.db"

SAMPLE_TRANSACTIONS = [
    (date(2018, 1, 10), "Clothes", "Tshirt", Decimal("22.00"), "Alex"),
    (date(2018, 1, 16), "Housing mortgage", "mortgage", Decimal("800.00"), "Sam"),
    (date(2018, 2, 10), "Salary", "monthly salary", Decimal("3500.00"), "Sam"),
    (date(2019, 2, 10), "Social Expenses", "visit friend", Decimal("35.00"), "Alex"),
    (date(2020, 1, 11), "Food & Dining", "McDonalds", Decimal("45.00"), "Alex"),
    (date(2020, 1, 10), "Salary", "monthly salary", Decimal("4500.00"), "Sam"),
    (date(2020, 1, 12), "Utilities", "Electricity bill", Decimal("225.00"), "Sam"),
    (date(2020, 1, 15), "Food & Dining", "Wendys", Decimal("25.00"), "Alex"),
    (date(2020, 2, 1), "Food & Dining", "Costco", Decimal("133.33"), "Sam"),
    (date(2020, 2, 20), "Utilities", "Mobile fee", Decimal("125.06"), "Alex"),
    (date(2020, 3, 25), "Education", "french course", Decimal("450.00"), "Alex"),
    (date(2020, 4, 21), "Municipal & School Tax", "2020 municipal", Decimal("2500.00"), "Sam"),
    (date(2021, 2, 10), "Insurance", "car insurance", Decimal("1100.00"), "Sam"),
    (date(2021, 7, 11), "Municipal & School Tax", "school tax", Decimal("720.11"), "Sam"),
    (date(2024, 1, 11), "Stock & Fund", "us fund", Decimal("1720.11"), "Alex"),
    (date(2024, 3, 1), "Rental Income", "rental income", Decimal("2720.11"), "Sam"),
    (date(2024, 3, 15), "Food & Dining", "Costco", Decimal("126.66"), "Alex"),
    (date(2024, 4, 7), "Rental Expenses", "fix fence", Decimal("1026.66"), "Sam"),
]


def insert_sample_transactions(budget: ReportService) -> int:
    ids = {category.name: category.id for category in budget.categories.list_all()}
    for when, category, description, amount, created_by in SAMPLE_TRANSACTIONS:
        budget.transactions.add(when, ids[category], amount, description, created_by)
    return len(SAMPLE_TRANSACTIONS)


def print_reports(budget: ReportService) -> None:
    print("\nBudget items:")
    for item in budget.get_budget_items():
        print(
            f"  {item.date:%Y-%m-%d} {item.category:<24} {item.description:<18} "
            f"{item.amount:>10} {item.balance:>10}  {item.created_by}"
        )

    print("\nBy month:")
    for month in budget.get_budget_items_by_month():
        print(f"  {month.month}: {month.total} ({len(month.details)} items)")

    print("\nBy category:")
    for group in budget.get_budget_items_by_category():
        print(f"  {group.category}: {group.total} ({len(group.details)} items)")

    print("\nBy category and month:")
    report = budget.get_budget_by_category_and_month()
    for month in report.months:
        cells = ", ".join(f"{c.category}={c.total}" for c in month.categories)
        print(f"  {month.month}: {cells}")
    totals = ", ".join(f"{t.category}={t.total}" for t in report.totals.totals)
    print(f"  {report.totals.label}: {totals}")

    print("\nBy creator:")
    for stats in budget.get_created_by_statistics():
        print(
            f"  {stats.created_by}: {stats.transaction_count} transactions, "
            f"income {stats.income_total}, spent {stats.non_income_total}, "
            f"net {stats.net_total}"
        )


def run(path: Path) -> None:
    print("=============== Home budget demo ===============")
    print("\nCreating new database...")
    with ReportService.open(path, is_new=True) as budget:
        print(f"Connected: {budget.is_connected}")
        print("Tables created:")
        for name in budget.database.table_names():
            print(f"  - {name}")
        print("Category types:")
        for category_type in CategoryType:
            print(f"  {category_type.value}: {category_type.label}")
        print(f"Default categories: {budget.categories.count()}")
        print(f"Inserted {insert_sample_transactions(budget)} transactions")
        print_reports(budget)

    print("\nOpening existing database...")
    with ReportService.open(path) as budget:
        print(f"Connected: {budget.is_connected}")
        print(f"Categories: {budget.categories.count()}")

    print("\nOpening a missing database...")
    try:
        ReportService.open(path.with_name("nonexistent.db"))
        print("Should have failed!")
    except DatabaseFileNotFoundError as exc:
        print(f"Correctly handled missing file: {exc}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Home budget demo")
    parser.add_argument("path", nargs="?", default=DEFAULT_DB_PATH, help="Path to SQLite DB file")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING)

    try:
        run(Path(args.path))
    except BudgetError as exc:
        logger.error(f"demo_failed: error={exc}")
        print(f"Demo failed: {exc}")
        return 1
    print("\nDone.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
