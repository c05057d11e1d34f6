"""
Tests for request date/time parsing.
"""
from datetime import date, datetime, time

import pytest

from carebook.errors import ValidationError
from carebook.utils.parsing import parse_date, parse_optional_date, parse_time


class TestParseDate:
    def test_iso_day(self):
        assert parse_date('2024-05-06') == date(2024, 5, 6)

    def test_date_and_datetime_instances(self):
        assert parse_date(date(2024, 5, 6)) == date(2024, 5, 6)
        assert parse_date(datetime(2024, 5, 6, 13, 45)) == date(2024, 5, 6)

    @pytest.mark.parametrize('value', ['2024-05-06garbage', '2024-05-06T09:00', '06/05/2024', '2024-13-01'])
    def test_rejects_anything_but_a_plain_day(self, value):
        with pytest.raises(ValidationError) as exc:
            parse_date(value, 'start_date')
        assert exc.value.message == 'Invalid start_date format. Use YYYY-MM-DD'

    def test_missing_value(self):
        with pytest.raises(ValidationError):
            parse_date(None)

    def test_optional_date_allows_blank(self):
        assert parse_optional_date('', 'end_date') is None
        assert parse_optional_date(None, 'end_date') is None


class TestParseTime:
    def test_hours_and_minutes(self):
        assert parse_time('09:30') == time(9, 30)

    @pytest.mark.parametrize('value', ['9am', '25:00', '09:30:00'])
    def test_rejects_other_formats(self, value):
        with pytest.raises(ValidationError):
            parse_time(value)
