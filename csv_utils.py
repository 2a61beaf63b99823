import csv
import re
from io import StringIO
from typing import Sequence

from services import BudgetItem


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def export_budget_items(items: Sequence[BudgetItem]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(
        ["Date", "Category", "Type", "Description", "Amount", "Balance", "CreatedBy"]
    )
    for item in items:
        writer.writerow(
            [
                item.date.date().isoformat(),
                sanitize_csv_value(item.category),
                item.category_type.label,
                sanitize_csv_value(item.description or ""),
                f"{item.amount:.2f}",
                f"{item.balance:.2f}",
                sanitize_csv_value(item.created_by or ""),
            ]
        )
    return output.getvalue()
