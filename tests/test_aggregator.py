from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, localcontext

from ledgerbot.schemas.ledger import ExpenseRecord, IncomeRecord
from ledgerbot.services.aggregator import Period, filter_by_period, parse_period, summarize
from ledgerbot.services.errors import ValidationError


def _expense(amount: str, category: str, day: date, name: str = "item") -> ExpenseRecord:
    return ExpenseRecord(name=name, amount=Decimal(amount), category=category, date=day)


def _income(amount: str, day: date, source: str = "salary") -> IncomeRecord:
    return IncomeRecord(source=source, amount=Decimal(amount), date=day)


class FilterByPeriodTests(unittest.TestCase):
    def test_weekly_includes_record_exactly_seven_days_old(self) -> None:
        now = datetime(2024, 5, 15, tzinfo=timezone.utc)
        record = _expense("10", "food", date(2024, 5, 8))

        self.assertEqual(filter_by_period([record], Period.WEEKLY, now), [record])

    def test_weekly_excludes_record_seven_days_and_one_second_old(self) -> None:
        now = datetime(2024, 5, 15, tzinfo=timezone.utc) + timedelta(seconds=1)
        record = _expense("10", "food", date(2024, 5, 8))

        self.assertEqual(filter_by_period([record], Period.WEEKLY, now), [])

    def test_weekly_keeps_recent_records_in_order(self) -> None:
        now = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)
        old = _expense("1", "food", date(2024, 5, 1))
        recent = _expense("2", "food", date(2024, 5, 10))
        today = _expense("3", "transport", date(2024, 5, 15))

        self.assertEqual(filter_by_period([old, recent, today], Period.WEEKLY, now), [recent, today])

    def test_monthly_starts_on_first_calendar_day(self) -> None:
        now = datetime(2024, 5, 15, 10, 30, tzinfo=timezone.utc)
        april = _income("100", date(2024, 4, 30))
        first = _income("200", date(2024, 5, 1))
        later = _income("300", date(2024, 5, 14))

        self.assertEqual(filter_by_period([april, first, later], Period.MONTHLY, now), [first, later])

    def test_monthly_uses_utc_month_of_now(self) -> None:
        # 2024-06-01 01:00 at UTC+3 is still May in UTC.
        now = datetime(2024, 6, 1, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        may = _expense("5", "food", date(2024, 5, 20))

        self.assertEqual(filter_by_period([may], Period.MONTHLY, now), [may])

    def test_string_period_is_accepted(self) -> None:
        now = datetime(2024, 5, 15, tzinfo=timezone.utc)
        record = _expense("10", "food", date(2024, 5, 14))

        self.assertEqual(filter_by_period([record], "weekly", now), [record])

    def test_unknown_period_is_rejected(self) -> None:
        now = datetime(2024, 5, 15, tzinfo=timezone.utc)
        with self.assertRaises(ValidationError):
            filter_by_period([], "yearly", now)


class ParsePeriodTests(unittest.TestCase):
    def test_known_periods(self) -> None:
        self.assertIs(parse_period("weekly"), Period.WEEKLY)
        self.assertIs(parse_period("monthly"), Period.MONTHLY)

    def test_missing_or_wrong_case_is_rejected(self) -> None:
        for raw in (None, "", "Weekly", "daily"):
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    parse_period(raw)


class SummarizeTests(unittest.TestCase):
    def test_totals_balance_and_categories(self) -> None:
        day = date(2024, 5, 1)
        expenses = [
            _expense("15000", "food", day, "Coffee"),
            _expense("5000", "transport", day, "Bus"),
            _expense("2500.50", "food", day, "Bread"),
        ]
        incomes = [_income("2000000", day), _income("100", day, "gift")]

        summary = summarize(expenses, incomes)

        self.assertEqual(summary.total_income, Decimal("2000100"))
        self.assertEqual(summary.total_expense, Decimal("22500.50"))
        self.assertEqual(summary.balance, Decimal("1977599.50"))
        self.assertEqual(
            summary.category_totals,
            {"food": Decimal("17500.50"), "transport": Decimal("5000")},
        )

    def test_empty_inputs_give_zero_totals_and_no_categories(self) -> None:
        summary = summarize([], [])

        self.assertEqual(summary.total_income, Decimal("0"))
        self.assertEqual(summary.total_expense, Decimal("0"))
        self.assertEqual(summary.balance, Decimal("0"))
        self.assertEqual(summary.category_totals, {})

    def test_decimal_sums_are_exact(self) -> None:
        day = date(2024, 5, 1)
        summary = summarize([_expense("0.1", "misc", day), _expense("0.2", "misc", day)], [])

        self.assertEqual(summary.total_expense, Decimal("0.3"))
        self.assertEqual(summary.balance, Decimal("-0.3"))

    def test_totals_ignore_caller_decimal_precision(self) -> None:
        day = date(2024, 5, 1)
        expenses = [
            _expense("999999999999.99", "rent", day),
            _expense("999999999999.99", "rent", day),
            _expense("0.01", "misc", day),
        ]

        with localcontext() as ctx:
            ctx.prec = 5
            summary = summarize(expenses, [_income("0.01", day)])

        self.assertEqual(summary.total_expense, Decimal("1999999999999.99"))
        self.assertEqual(summary.category_totals["rent"], Decimal("1999999999999.98"))
        self.assertEqual(summary.balance, Decimal("-1999999999999.98"))
