"""Expense statistics — pure business logic.

Income/expense totals and the per-category expense breakdown for a date
range. Dates are compared as ``YYYY-MM-DD`` strings.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date

from lifeone.data.models import DEFAULT_GROUP, Expense


@dataclass
class ExpenseSummary:
    start: str
    end: str
    income: float = 0
    expense: float = 0
    by_category: list[tuple[str, float]] = field(default_factory=list)   # largest first

    @property
    def net(self) -> float:
        return self.income - self.expense


def _in_range(expense: Expense, start: str, end: str) -> bool:
    return start <= expense.date <= end


def summarize_expenses(expenses: list[Expense], start: date, end: date) -> ExpenseSummary:
    """Totals for ``start``..``end`` inclusive."""
    lo, hi = start.isoformat(), end.isoformat()
    summary = ExpenseSummary(start=lo, end=hi)
    per_category: dict[str, float] = {}
    for expense in expenses:
        if not _in_range(expense, lo, hi):
            continue
        if expense.type == "income":
            summary.income += expense.amount
            continue
        summary.expense += expense.amount
        name = expense.category or DEFAULT_GROUP
        per_category[name] = per_category.get(name, 0) + expense.amount
    summary.by_category = sorted(per_category.items(), key=lambda kv: (-kv[1], kv[0]))
    return summary


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def monthly_expense_total(expenses: list[Expense], year: int, month: int) -> float:
    """Sum of ``type == "expense"`` amounts in the given month."""
    start, end = month_bounds(year, month)
    return summarize_expenses(expenses, start, end).expense
