from __future__ import annotations

from datetime import date, datetime
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "beermile_platform.settings")

import django

django.setup()

from django.test import SimpleTestCase, override_settings

from beermile import utils


class TimeCodecTests(SimpleTestCase):
    def test_parse_time_accepts_minutes_and_seconds(self):
        self.assertEqual(utils.parse_time("6:45"), 405)
        self.assertEqual(utils.parse_time("0:07"), 7)
        self.assertEqual(utils.parse_time("347"), 347)

    def test_parse_time_rejects_bad_shapes(self):
        for value in ("", "6:", "6:75", "1:2:3", "abc", "-1:00"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    utils.parse_time(value)

    def test_format_time_pads_seconds(self):
        self.assertEqual(utils.format_time(405), "6:45")
        self.assertEqual(utils.format_time(60), "1:00")
        self.assertEqual(utils.format_time(0), "0:00")

    def test_format_and_parse_agree(self):
        for seconds in (0, 59, 347, 1200):
            self.assertEqual(utils.parse_time(utils.format_time(seconds)), seconds)

    def test_parse_seconds_bounds(self):
        self.assertEqual(utils.parse_seconds(0), 0)
        self.assertEqual(utils.parse_seconds(1200), 1200)
        self.assertEqual(utils.parse_seconds("5:47"), 347)
        self.assertEqual(utils.parse_seconds(360.0), 360)
        for value in (-1, 1201, 12.5, True, None, "nope"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    utils.parse_seconds(value)

    @override_settings(BEERMILE_MAX_TIME_SECONDS=600)
    def test_parse_seconds_reads_configured_maximum(self):
        with self.assertRaises(ValueError):
            utils.parse_seconds(601)


class CalendarTests(SimpleTestCase):
    def test_iso_dates(self):
        self.assertEqual(utils.to_iso_date(date(2026, 3, 5)), "2026-03-05")
        self.assertEqual(utils.to_iso_date(datetime(2026, 3, 5, 14, 0)), "2026-03-05")
        self.assertEqual(utils.from_iso_date("2026-03-15"), date(2026, 3, 15))
        for value in ("2026-3-15", "15/03/2026", "2026-02-30", "", "2026-W11-7", "20260315"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    utils.from_iso_date(value)

    def test_past_dates_are_strictly_before_today(self):
        today = date(2026, 3, 15)
        self.assertTrue(utils.is_past_date(date(2026, 3, 14), today))
        self.assertFalse(utils.is_past_date(date(2026, 3, 15), today))
        self.assertFalse(utils.is_past_date(date(2026, 3, 16), today))

    def test_leap_years(self):
        self.assertEqual(utils.days_in_month(2024, 2), 29)
        self.assertEqual(utils.days_in_month(2026, 2), 28)
        self.assertEqual(utils.days_in_month(1900, 2), 28)
        self.assertEqual(utils.days_in_month(2000, 2), 29)
        self.assertEqual(utils.days_in_month(2026, 4), 30)

    def test_window_spans_current_and_next_two_months(self):
        start, end = utils.three_month_window(date(2026, 3, 15))
        self.assertEqual(start, date(2026, 3, 1))
        self.assertEqual(end, date(2026, 5, 31))

    def test_window_wraps_year(self):
        start, end = utils.three_month_window(date(2026, 12, 10))
        self.assertEqual(start, date(2026, 12, 1))
        self.assertEqual(end, date(2027, 2, 28))

    def test_outside_window(self):
        today = date(2026, 3, 15)
        self.assertFalse(utils.is_outside_window(date(2026, 5, 31), today))
        self.assertTrue(utils.is_outside_window(date(2026, 6, 1), today))

    def test_parse_month(self):
        self.assertEqual(utils.parse_month("2026-03"), (2026, 3))
        self.assertEqual(utils.parse_month(None, today=date(2026, 7, 4)), (2026, 7))
        for value in ("2026-13", "March", "2026/03", "2026-3-1"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    utils.parse_month(value)

    def test_calendar_grid_starts_on_sunday(self):
        grid = utils.calendar_grid(2026, 3)
        self.assertEqual(grid[0], [1, 2, 3, 4, 5, 6, 7])
        self.assertEqual(grid[-1], [29, 30, 31, None, None, None, None])
        self.assertEqual(len(grid), 5)
