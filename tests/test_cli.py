import argparse
from datetime import date

import pytest

from fleet_rental.__main__ import build_parser, parse_month


def test_parse_month():
    assert parse_month('2024-03') == date(2024, 3, 1)
    with pytest.raises(argparse.ArgumentTypeError):
        parse_month('March')
    with pytest.raises(argparse.ArgumentTypeError):
        parse_month('2024-13')


def test_generate_payments_arguments():
    args = build_parser().parse_args(['generate-payments', '--month', '2024-05'])
    assert args.command == 'generate-payments'
    assert args.month == date(2024, 5, 1)

    args = build_parser().parse_args(['generate-payments'])
    assert args.month is None


def test_run_arguments():
    args = build_parser().parse_args(['run', '--port', '8080', '--debug'])
    assert (args.host, args.port, args.debug) == ('127.0.0.1', 8080, True)


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
