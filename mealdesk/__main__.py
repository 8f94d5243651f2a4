"""
mealdesk command line.

Usage:
    python -m mealdesk init-db
    python -m mealdesk demo --isolation-level READ_COMMITTED
    python -m mealdesk import-csv lunches.csv
    python -m mealdesk order --username jdoe --password secret 24/11/2025 --choice 2
    python -m mealdesk pick --username jdoe --password secret 24/11/2025
    python -m mealdesk report jdoe 2025 11
    python -m mealdesk week 24/11/2025
"""

import argparse
import asyncio
import sys
from datetime import date, datetime
from typing import List, Optional

from mealdesk.core.config import get_settings
from mealdesk.core.container import Container
from mealdesk.core.database import DatabaseHealthCheck
from mealdesk.core.errors import ConfigurationError, DataAccessError, RequestRejected
from mealdesk.core.isolation import IsolationLevel
from mealdesk.core.logging_config import get_logger, setup_logging
from mealdesk.models.lunch import Lunch
from mealdesk.models.meal import Meal

logger = get_logger("mealdesk")

DATE_FORMAT = "%d/%m/%Y"


def _day(value: str) -> date:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        raise argparse.ArgumentTypeError("Specified date is not in format dd/mm/yyyy.")


def _isolation_level(value: str) -> IsolationLevel:
    try:
        return IsolationLevel.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments with the chosen subcommand in `command`
    """
    parser = argparse.ArgumentParser(
        prog="mealdesk",
        description="Lunch ordering console",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    DATABASE_URL           - SQLAlchemy URL (sqlite+aiosqlite:// or mysql+aiomysql://)
    CONNECTION_STRING      - server=..;database=..;user=..;password=..; (overrides DATABASE_URL)
    ISOLATION_LEVEL        - Default transaction isolation level
    LOG_LEVEL, LOG_JSON    - Logging output

    See .env.example for full configuration options.
        """
    )
    commands = parser.add_subparsers(dest="command", required=True)

    init_db = commands.add_parser("init-db", help="Create tables and default rows")
    init_db.add_argument("--no-seed", action="store_true", help="Only create tables")

    demo = commands.add_parser("demo", help="Run the non-repeatable read demonstration")
    demo.add_argument(
        "--isolation-level",
        type=_isolation_level,
        action="append",
        help="Level to run at; repeat to compare levels (default: configured level)"
    )
    demo.add_argument(
        "--stall",
        type=float,
        default=None,
        help="Seconds transaction A waits between reads (default: ANOMALY_STALL_SECONDS)"
    )

    import_csv = commands.add_parser("import-csv", help="Import lunches from a CSV file")
    import_csv.add_argument("path", help="CSV file to import")

    for name, help_text in (("order", "Order a lunch"), ("pick", "Pick up an ordered lunch")):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("--username", required=True)
        sub.add_argument("--password", required=True)
        sub.add_argument("date", type=_day, help="Lunch date (dd/mm/yyyy)")
        if name == "order":
            sub.add_argument("--choice", type=int, default=1, help="Lunch number on that day (default: 1)")

    report = commands.add_parser("report", help="Monthly report for a user")
    report.add_argument("username")
    report.add_argument("year", type=int)
    report.add_argument("month", type=int)

    week = commands.add_parser("week", help="Print lunches offered this week")
    week.add_argument("date", type=_day, nargs="?", default=None, help="Any day of the week (default: today)")

    return parser.parse_args(argv)


def _format_lunch(container: Container, lunch: Lunch) -> str:
    meals = container.entity_sets.cache(Meal)

    def name(meal_id: int) -> str:
        meal = meals.get(meal_id)
        return meal.name if meal is not None else f"#{meal_id}"

    return (
        f"{lunch.date:%d/%m/%Y} - {lunch.price} credits\n"
        f"Soup: {name(lunch.soup_id)}\n"
        f"Main course: {name(lunch.main_meal_id)}\n"
        f"Dessert: {name(lunch.dessert_id)}"
    )


async def run_command(container: Container, args: argparse.Namespace) -> int:
    """
    Execute one subcommand.

    Returns:
        Process exit status
    """
    if args.command == "init-db":
        await container.init_db(seed=not args.no_seed)
        print("Database initialized")
        return 0

    if args.command == "demo":
        levels = args.isolation_level or [container.executor.default_isolation_level]
        demo = container.anomaly_demo(stall_seconds=args.stall)
        status = 0
        for level in levels:
            result = await demo.run(level)
            if result.is_err():
                print(f"Demonstration failed: {result.error}", file=sys.stderr)
                status = 1
                continue
            report = result.unwrap()
            print(report.summary())
            if not report.cleanup_succeeded:
                print("Warning: the original credit could not be restored", file=sys.stderr)
        return status

    if args.command == "import-csv":
        count = await container.importer.import_file(args.path)
        print(f"Imported {count} lunches")
        return 0

    if args.command in ("order", "pick"):
        user = await container.accounts.login(args.username, args.password)
        label = args.date.strftime(DATE_FORMAT)
        if args.command == "order":
            await container.ordering.order_lunch(user, args.date, args.choice)
            print(f"Ordered lunch {args.choice} from date {label}")
        else:
            await container.ordering.pick_lunch(user, args.date)
            print(f"Lunch for {label} is now picked")
        return 0

    if args.command == "report":
        report = await container.reports.monthly_report(args.username, args.year, args.month)
        print(report.render())
        return 0

    if args.command == "week":
        await container.entity_sets.cache(Meal).get_all()
        lunches = await container.ordering.lunches_in_week(args.date or date.today())
        print("\n".join(_format_lunch(container, lunch) for lunch in lunches) or "No lunches this week")
        return 0

    raise ValueError(f"Unknown command {args.command}")


async def _main(args: argparse.Namespace) -> int:
    container = Container(get_settings())
    try:
        health = DatabaseHealthCheck(container.engine)
        if not await health.check_connection():
            print(f"Database unreachable: {health.get_database_info()['url']}", file=sys.stderr)
            return 1
        return await run_command(container, args)
    except RequestRejected as e:
        print(str(e), file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"File not found: {e.filename}", file=sys.stderr)
        return 1
    except DataAccessError as e:
        logger.error("Command failed", extra=e.to_dict())
        print(f"Data access failed: {e}", file=sys.stderr)
        return 1
    finally:
        await container.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(level=settings.log_level, json_format=settings.log_json)
    logger.debug("Running command", extra={"command": args.command})
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
