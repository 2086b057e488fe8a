from datetime import date, datetime

import pytest

from fleet_rental.formatting import (format_currency, format_date, format_month,
                                     format_percentage, parse_date)


@pytest.mark.parametrize('value, expected', [
    ('2024-03-05', date(2024, 3, 5)),
    ('05/03/2024', date(2024, 3, 5)),
    ('2024-03-05T10:30:00Z', date(2024, 3, 5)),
    (datetime(2024, 3, 5, 23, 59), date(2024, 3, 5)),
    (date(2024, 3, 5), date(2024, 3, 5)),
    ('', None),
    (None, None),
])
def test_parse_date(value, expected):
    assert parse_date(value) == expected


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_date('yesterday')


def test_formatters():
    assert format_date(date(2024, 3, 5)) == '05/03/2024'
    assert format_date(None) == ''
    assert format_month(date(2024, 3, 1)) == 'March 2024'
    assert format_currency(1234) == 'QAR 1,234.00'
    assert format_currency(None, 'USD') == 'USD 0.00'
    assert format_percentage(12.345) == '12.3%'
    assert format_percentage(None) == 'n/a'
