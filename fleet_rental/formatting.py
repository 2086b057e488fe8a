"""Presentation helpers shared by the reports and payment descriptions."""

from datetime import date, datetime

DISPLAY_DATE_FORMAT = '%d/%m/%Y'


def parse_date(value):
    """Parse ISO (YYYY-MM-DD) or European (DD/MM/YYYY) dates.

    ``date`` and ``datetime`` instances pass through; empty strings and
    ``None`` give ``None``.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in ('%Y-%m-%d', DISPLAY_DATE_FORMAT):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    # ISO timestamps as sent by JavaScript clients
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}") from None


def format_date(value) -> str:
    if value is None:
        return ''
    return value.strftime(DISPLAY_DATE_FORMAT)


def format_month(value) -> str:
    """``date(2024, 3, 1)`` -> ``'March 2024'``."""
    return value.strftime('%B %Y')


def format_currency(amount, currency: str = 'QAR') -> str:
    return f"{currency} {amount or 0:,.2f}"


def format_percentage(value, digits: int = 1) -> str:
    if value is None:
        return 'n/a'
    return f"{value:.{digits}f}%"
