"""Command line entry point: ``python -m fleet_rental <command>``."""

import argparse
import json
import sys
from datetime import date

from . import create_app, init_db
from .conflicts import audit_and_fix_double_booked_vehicles
from .tasks import check_agreements, generate_payments


def parse_month(value: str) -> date:
    try:
        year, month = value.split('-')
        return date(int(year), int(month), 1)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM, got {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='fleet_rental', description="Fleet rental management")
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help="Create the database tables")

    run = commands.add_parser('run', help="Start the development server")
    run.add_argument('--host', default='127.0.0.1')
    run.add_argument('--port', type=int, default=5000)
    run.add_argument('--debug', action='store_true')

    commands.add_parser('audit-double-bookings',
                        help="Cancel all but the newest active agreement per vehicle")

    payments = commands.add_parser('generate-payments',
                                   help="Generate rent payments (all missing months by default)")
    payments.add_argument('--month', type=parse_month, help="Only this month (YYYY-MM)")

    commands.add_parser('check-agreements',
                        help="Expire ended agreements and refresh overdue payments")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    app = create_app()

    if args.command == 'run':
        app.run(host=args.host, port=args.port, debug=args.debug)
        return 0

    with app.app_context():
        if args.command == 'init-db':
            init_db()
            print("Database initialised.")
            return 0
        if args.command == 'audit-double-bookings':
            result = audit_and_fix_double_booked_vehicles().to_dict()
        elif args.command == 'generate-payments':
            result = generate_payments(args.month)
        else:
            result = check_agreements()
    print(json.dumps(result, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
