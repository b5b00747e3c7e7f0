"""Tests for lifeone.core.stats — expense totals and breakdowns."""

from datetime import date

from lifeone.core.stats import month_bounds, monthly_expense_total, summarize_expenses
from lifeone.data.models import Expense

EXPENSES = [
    Expense(id="1", date="2025-03-01", item="점심", amount=9000, category="식비"),
    Expense(id="2", date="2025-03-15", item="택시", amount=15000, category="교통"),
    Expense(id="3", date="2025-03-20", item="저녁", amount=12000, category="식비"),
    Expense(id="4", date="2025-03-25", item="월급", amount=3000000, type="income"),
    Expense(id="5", date="2025-03-31", item="잡화", amount=5000),
    Expense(id="6", date="2025-04-01", item="다음달", amount=99999, category="식비"),
]


class TestSummarizeExpenses:
    def test_totals(self):
        summary = summarize_expenses(EXPENSES, date(2025, 3, 1), date(2025, 3, 31))
        assert summary.expense == 41000
        assert summary.income == 3000000
        assert summary.net == 3000000 - 41000

    def test_breakdown_largest_first(self):
        summary = summarize_expenses(EXPENSES, date(2025, 3, 1), date(2025, 3, 31))
        assert summary.by_category == [("식비", 21000), ("교통", 15000), ("기타", 5000)]

    def test_range_is_inclusive(self):
        summary = summarize_expenses(EXPENSES, date(2025, 3, 15), date(2025, 3, 15))
        assert summary.expense == 15000

    def test_empty(self):
        summary = summarize_expenses([], date(2025, 3, 1), date(2025, 3, 31))
        assert (summary.income, summary.expense, summary.by_category) == (0, 0, [])


def test_month_bounds():
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))


def test_monthly_expense_total():
    assert monthly_expense_total(EXPENSES, 2025, 3) == 41000
    assert monthly_expense_total(EXPENSES, 2025, 4) == 99999
