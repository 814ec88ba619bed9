import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console

from stabilityguard.adapters.storage import SQLiteStorage
from stabilityguard.core.metrics import rank_by_flakiness
from stabilityguard.core.models import StabilityConfig
from stabilityguard.core.propagation import propagate_histories
from stabilityguard.reporter import RichReporter

DEFAULT_DB = ".stabilityguard/history.db"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--db", default=DEFAULT_DB, help="Database path")
    parser.add_argument(
        "--build", type=int, default=None, help="Build number (default: latest)"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")


def _resolve_build(storage: SQLiteStorage, build_number: int | None) -> int | None:
    if build_number is not None:
        return build_number
    return storage.latest_build_number()


def report_command(db_path: str, build_number: int | None) -> None:
    config = StabilityConfig(db_path=Path(db_path))
    storage = SQLiteStorage(config)

    build = _resolve_build(storage, build_number)
    histories = storage.get_histories(build) if build is not None else {}

    reporter = RichReporter()
    reporter.report(rank_by_flakiness(histories), build)

    storage.close()


def show_command(db_path: str, test_id: str, build_number: int | None) -> None:
    config = StabilityConfig(db_path=Path(db_path))
    storage = SQLiteStorage(config)

    build = _resolve_build(storage, build_number)
    histories = storage.get_histories(build) if build is not None else {}

    reporter = RichReporter()
    reporter.report_history(test_id, histories.get(test_id))

    storage.close()


def propagate_command(
    db_path: str, build_number: int | None, max_history_length: int
) -> None:
    config = StabilityConfig(
        db_path=Path(db_path), max_history_length=max_history_length
    )
    storage = SQLiteStorage(config)
    console = Console()

    build = _resolve_build(storage, build_number)
    if build is None:
        console.print("[yellow]No builds recorded.[/yellow]")
        storage.close()
        return

    results = storage.get_results(build)
    histories = propagate_histories(storage, results, build, config)
    storage.attach_histories(build, histories)
    storage.close()

    console.print(
        f"[green]Build {build}: {len(histories)} tracked histories "
        f"from {len(results)} results.[/green]"
    )


def clear_command(db_path: str, force: bool) -> None:
    console = Console()
    if not force:
        console.print("[yellow]This will delete all test results and histories.[/yellow]")
        response = input("Are you sure? (yes/no): ").strip().lower()
        if response != "yes":
            console.print("[red]Aborted.[/red]")
            return

    config = StabilityConfig(db_path=Path(db_path))
    storage = SQLiteStorage(config)
    storage.clear()
    storage.close()

    console.print("[green]Test history cleared successfully.[/green]")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="StabilityGuard - Track test stability and flakiness across builds"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    report_parser = subparsers.add_parser("report", help="Show stability of tracked tests")
    _add_common_args(report_parser)

    show_parser = subparsers.add_parser("show", help="Show the history of one test")
    show_parser.add_argument("test_id", help="Test node id")
    _add_common_args(show_parser)

    propagate_parser = subparsers.add_parser(
        "propagate", help="Rebuild the histories of a recorded build"
    )
    _add_common_args(propagate_parser)
    propagate_parser.add_argument(
        "--max-history", type=_positive_int, default=30, help="History length (default: 30)"
    )

    clear_parser = subparsers.add_parser("clear", help="Clear test history")
    clear_parser.add_argument("--db", default=DEFAULT_DB, help="Database path")
    clear_parser.add_argument("--force", action="store_true", help="Skip confirmation")
    clear_parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)

    if args.command == "report":
        report_command(args.db, args.build)
    elif args.command == "show":
        show_command(args.db, args.test_id, args.build)
    elif args.command == "propagate":
        propagate_command(args.db, args.build, args.max_history)
    elif args.command == "clear":
        clear_command(args.db, args.force)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
