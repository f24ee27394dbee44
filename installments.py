import calendar
import re
from datetime import date, datetime, time
from typing import Optional

from errors import InvalidArgument
from models import InstallmentPlan, Transaction, TransactionType

INSTALLMENT_MARKER = re.compile(r"\(Installment (\d+)/(\d+)\)\s*$")


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(base: date, months: int) -> date:
    """Calendar-month shift that clamps the day to the target month's length."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def schedule_dates(start: date, count: int) -> list[date]:
    # offsets are taken from the start date so a clamped month does not drift
    # later ones (Jan 31 -> Feb 29 -> Mar 31)
    return [add_months(start, offset) for offset in range(count)]


def last_due_date(start: date, count: int) -> date:
    """Due date of the final installment; rejects schedules past year 9999."""
    try:
        return add_months(start, count - 1)
    except (OverflowError, ValueError) as exc:
        raise InvalidArgument(
            f"{count} monthly installments from {start.isoformat()} run past the "
            "last supported date"
        ) from exc


def installment_description(description: str, number: int, total: int) -> str:
    return f"{description} (Installment {number}/{total})"


def parse_installment_number(description: Optional[str]) -> Optional[int]:
    if not description:
        return None
    match = INSTALLMENT_MARKER.search(description)
    if not match:
        return None
    return int(match.group(1))


def build_installments(
    plan: InstallmentPlan,
    *,
    category: str,
    description: str,
    start: date,
) -> list[Transaction]:
    transactions: list[Transaction] = []
    total = plan.total_installments
    for number, due in enumerate(schedule_dates(start, total), start=1):
        transactions.append(
            Transaction(
                owner_id=plan.owner_id,
                occurred_at=datetime.combine(due, time.min),
                type=TransactionType.expense,
                category=category,
                description=installment_description(description, number, total),
                amount_cents=plan.installment_value_cents,
                plan=plan,
                installment_number=number,
            )
        )
    return transactions
