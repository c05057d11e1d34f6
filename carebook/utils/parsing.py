"""
Request value parsing for dates and times of day.
"""
from datetime import date, datetime, time
from typing import Any, Optional

from carebook.errors import ValidationError

DATE_FORMAT = '%Y-%m-%d'
TIME_FORMAT = '%H:%M'


def parse_date(value: Any, field: str = 'date') -> date:
    """
    Parse a YYYY-MM-DD string into a date

    Args:
        value: String from the request (a date instance is returned as is)
        field: Field name used in the error message

    Returns:
        datetime.date object
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f'Field "{field}" is required')
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f'Invalid {field} format. Use YYYY-MM-DD')


def parse_optional_date(value: Any, field: str) -> Optional[date]:
    if value in (None, ''):
        return None
    return parse_date(value, field)


def parse_time(value: Any, field: str = 'time') -> time:
    """Parse an HH:MM string into a time of day"""
    if isinstance(value, time):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f'Field "{field}" is required')
    try:
        return datetime.strptime(value, TIME_FORMAT).time()
    except ValueError:
        raise ValidationError(f'Invalid {field} format. Use HH:MM (e.g., 10:30)')
