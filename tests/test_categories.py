from datetime import date
from decimal import Decimal

import pytest

from errors import ConflictError, DisposedError, InvalidArgumentError, NotFoundError
from models import CategoryType
from services import DEFAULT_CATEGORIES, CategoryService, TransactionService


def make_categories(tmp_path) -> CategoryService:
    return CategoryService.open(tmp_path / "budget.db", is_new=True)


def test_new_database_is_seeded_with_defaults(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        assert categories.count() == len(DEFAULT_CATEGORIES) == 18

        listed = categories.list_all()
        # Ordered by type, then name
        assert [c.name for c in listed[:2]] == ["Rental Income", "Salary"]
        assert listed[-1].name == "Savings"
        assert listed[-1].type == CategoryType.savings


def test_open_existing_does_not_reseed(tmp_path) -> None:
    path = tmp_path / "budget.db"
    with CategoryService.open(path, is_new=True) as categories:
        tables = categories.database.table_names()
        names = [c.name for c in categories.list_all()]

    with CategoryService.open(path) as categories:
        assert categories.count() == 18
        assert categories.database.table_names() == tables
        assert [c.name for c in categories.list_all()] == names


def test_set_defaults_refuses_non_empty_table(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        with pytest.raises(ConflictError):
            categories.set_defaults()
        assert categories.count() == 18


def test_add_and_get(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        category_id = categories.add("  Pets  ", CategoryType.expense)

        category = categories.get(category_id)
        assert category is not None
        assert category.name == "Pets"
        assert category.type == CategoryType.expense
        assert str(category) == "Pets"


def test_add_accepts_type_names(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        category_id = categories.add("Bonus", "income")
        assert categories.get(category_id).type == CategoryType.income


@pytest.mark.parametrize("name", ["", "   ", "x" * 101])
def test_add_rejects_bad_names(tmp_path, name) -> None:
    with make_categories(tmp_path) as categories:
        with pytest.raises(InvalidArgumentError):
            categories.add(name, CategoryType.expense)
        assert categories.count() == 18


def test_add_rejects_unknown_type(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        with pytest.raises(InvalidArgumentError, match="type"):
            categories.add("Weird", 9)


def test_get_missing_returns_none(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        assert categories.get(9999) is None


def test_list_by_type(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        debts = categories.list_by_type(CategoryType.debt)
        assert [c.name for c in debts] == ["Auto loan", "Housing mortgage"]
        assert [c.name for c in categories.list_by_type("income")] == [
            "Rental Income",
            "Salary",
        ]

        assert categories.list_by_type(" Debt ") == debts

        with pytest.raises(InvalidArgumentError):
            categories.list_by_type(42)


def test_update(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        category_id = categories.add("Gym", CategoryType.expense)
        categories.update(category_id, "Gym membership", CategoryType.debt)

        category = categories.get(category_id)
        assert category.name == "Gym membership"
        assert category.type == CategoryType.debt


def test_update_missing_raises(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        with pytest.raises(NotFoundError):
            categories.update(9999, "Nothing", CategoryType.expense)
        with pytest.raises(InvalidArgumentError):
            categories.update(1, " ", CategoryType.expense)


def test_delete(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        category_id = categories.add("Temporary", CategoryType.expense)
        categories.delete(category_id)

        assert categories.get(category_id) is None
        with pytest.raises(NotFoundError):
            categories.delete(category_id)


def test_delete_in_use_is_a_conflict(tmp_path) -> None:
    with make_categories(tmp_path) as categories:
        salary = next(c for c in categories.list_all() if c.name == "Salary")
        transactions = TransactionService(categories.database)
        transactions.add(date(2024, 1, 1), salary.id, Decimal("100"), "Pay", "A")

        with pytest.raises(ConflictError, match="1 associated transactions"):
            categories.delete(salary.id)
        assert categories.get(salary.id) is not None


def test_closed_store_refuses_work(tmp_path) -> None:
    categories = make_categories(tmp_path)
    categories.close()

    with pytest.raises(DisposedError, match="CategoryService"):
        categories.count()
    with pytest.raises(DisposedError):
        categories.add("Late", CategoryType.expense)
