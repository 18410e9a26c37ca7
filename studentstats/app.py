import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from storage.repositories.students import StudentRepository

from . import __version__
from .aggregator import AggregateUpdater
from .database import WELCOME_DOC_PATH, get_session_factory, init_database
from .env import Settings, load_env
from .errors import ReconciliationFailure
from .logger import get_logger
from .router import ChangeEventRouter
from .schema import validate_student
from .storage import AggregateStore, load_document
from .welcome_board import WelcomeBoardProjection

logger = get_logger()


@dataclass
class Pipeline:
    """Everything wired against one database file."""

    settings: Settings
    store: AggregateStore
    repository: StudentRepository
    projection: WelcomeBoardProjection
    router: ChangeEventRouter

    def close(self) -> None:
        self.router.close()


def build_pipeline(settings: Settings) -> Pipeline:
    init_database(settings.db_path)
    session_factory = get_session_factory(settings.db_path)
    store = AggregateStore(session_factory, max_retries=settings.tx_retries)
    repository = StudentRepository(session_factory)
    projection = WelcomeBoardProjection(repository, limit=settings.board_limit)
    router = ChangeEventRouter(AggregateUpdater(store), projection)
    repository.on_change = router.handle
    return Pipeline(settings, store, repository, projection, router)


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if getattr(args, "db", None):
        settings.db_path = Path(args.db)
    if getattr(args, "batch_size", None):
        settings.batch_size = args.batch_size
    return settings


def _read_json(path_str: str) -> dict:
    input_path = Path(path_str)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False, default=str))


def cmd_init(args: argparse.Namespace) -> None:
    settings = _settings(args)
    init_database(settings.db_path)
    print(f"Database ready: {settings.db_path}")


def cmd_validate(args: argparse.Namespace) -> None:
    errors = validate_student(_read_json(args.input))
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print("Valid")


def cmd_add(args: argparse.Namespace) -> None:
    record = _read_json(args.input)
    errors = validate_student(record)
    if errors:
        raise SystemExit("Invalid student: " + "; ".join(errors))
    pipeline = build_pipeline(_settings(args))
    try:
        student_id = pipeline.repository.create(record)
    finally:
        pipeline.close()
    print(f"Student: {student_id}")
    print("Status: created")


def cmd_update(args: argparse.Namespace) -> None:
    changes = _read_json(args.input)
    errors = validate_student({"full_name": "-", **changes})
    if errors:
        raise SystemExit("Invalid changes: " + "; ".join(errors))
    pipeline = build_pipeline(_settings(args))
    try:
        change = pipeline.repository.update(args.id, changes)
    finally:
        pipeline.close()
    if change is None:
        raise SystemExit(f"Student not found: {args.id}")
    print(f"Student: {args.id}")
    print("Status: updated")


def cmd_delete(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        change = pipeline.repository.delete(args.id)
    finally:
        pipeline.close()
    if change is None:
        raise SystemExit(f"Student not found: {args.id}")
    print(f"Student: {args.id}")
    print("Status: deleted")


def cmd_summary(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        _print_json(pipeline.store.read())
    finally:
        pipeline.close()


def cmd_board(args: argparse.Namespace) -> None:
    pipeline = build_pipeline(_settings(args))
    try:
        if args.refresh:
            pipeline.projection.recompute()
        with pipeline.repository.session_factory() as session:
            names = load_document(session, WELCOME_DOC_PATH).get("names", [])
    finally:
        pipeline.close()
    if not names:
        print("No students waiting.")
        return
    print(f"{len(names)} student(s) waiting:")
    for name in names:
        print(f" - {name}")


def cmd_reconcile(args: argparse.Namespace) -> None:
    from pipelines.reconciliation.full_rebuild import ReconciliationJob

    settings = _settings(args)
    pipeline = build_pipeline(settings)
    try:
        job = ReconciliationJob(pipeline.repository, pipeline.store, window_months=settings.window_months)
        summary = job.run(dry_run=args.dry_run)
    except ReconciliationFailure as e:
        raise SystemExit(f"Reconciliation failed: {e}")
    finally:
        pipeline.close()
    if args.dry_run:
        _print_json(summary)
        return
    print(f"Summary rebuilt: totalStudents={summary['totalStudents']}")


def cmd_drift(args: argparse.Namespace) -> None:
    from pipelines.reconciliation.full_rebuild import ReconciliationJob

    settings = _settings(args)
    pipeline = build_pipeline(settings)
    try:
        drift = ReconciliationJob(pipeline.repository, pipeline.store, window_months=settings.window_months).drift()
    finally:
        pipeline.close()
    if not drift:
        print("No drift: summary matches a full rebuild.")
        return
    print("Drift detected:")
    _print_json(drift)
    raise SystemExit(1)


def cmd_backfill(args: argparse.Namespace) -> None:
    from pipelines.backfill.jobs import BACKFILLS

    settings = _settings(args)
    pipeline = build_pipeline(settings)
    try:
        report = BACKFILLS[args.job](pipeline.repository, batch_size=settings.batch_size, dry_run=args.dry_run)
    finally:
        pipeline.close()
    print(
        f"Done. scanned={report.scanned} planned={report.planned} "
        f"updated={report.updated} batches={report.batches} failed={report.failed_batches}"
    )
    if not report.ok:
        raise SystemExit(1)


def main(argv: Optional[list] = None):
    load_env()
    settings = Settings.from_env()
    logger.configure(
        level=settings.log_level,
        log_dir=settings.log_dir,
        enable_file=settings.log_dir is not None,
    )

    from pipelines.backfill.jobs import BACKFILLS

    parser = argparse.ArgumentParser(prog="studentstats", description="Student dashboard aggregates")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite database (default: $STUDENTSTATS_DB or data/students.db)")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init", help="Create the database tables")
    ini.set_defaults(func=cmd_init)

    val = subparsers.add_parser("validate", help="Validate a student JSON record")
    val.add_argument("--input", required=True, help="Path to student JSON input")
    val.set_defaults(func=cmd_validate)

    add = subparsers.add_parser("add", help="Create a student from JSON and update aggregates")
    add.add_argument("--input", required=True, help="Path to student JSON input")
    add.set_defaults(func=cmd_add)

    upd = subparsers.add_parser("update", help="Apply JSON field changes to a student")
    upd.add_argument("--id", required=True, help="Student id")
    upd.add_argument("--input", required=True, help="Path to JSON with changed fields")
    upd.set_defaults(func=cmd_update)

    dele = subparsers.add_parser("delete", help="Delete a student")
    dele.add_argument("--id", required=True, help="Student id")
    dele.set_defaults(func=cmd_delete)

    summ = subparsers.add_parser("summary", help="Print the dashboard summary document")
    summ.set_defaults(func=cmd_summary)

    brd = subparsers.add_parser("board", help="Print the waiting list")
    brd.add_argument("--refresh", action="store_true", help="Recompute before printing")
    brd.set_defaults(func=cmd_board)

    rec = subparsers.add_parser("reconcile", help="Rebuild the summary from all student records")
    rec.add_argument("--dry-run", action="store_true", help="Print the rebuilt summary without writing it")
    rec.set_defaults(func=cmd_reconcile)

    dft = subparsers.add_parser("drift", help="Compare the stored summary with a full rebuild")
    dft.set_defaults(func=cmd_drift)

    bkf = subparsers.add_parser("backfill", help="Run a batched one-off fix over all students")
    bkf.add_argument("job", choices=sorted(BACKFILLS), help="Backfill to run")
    bkf.add_argument("--batch-size", type=int, help="Records per committed batch (default: 250)")
    bkf.add_argument("--dry-run", action="store_true", help="Plan without writing")
    bkf.set_defaults(func=cmd_backfill)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        logger.log_metrics_summary()
        return

    parser.print_help()


if __name__ == "__main__":
    main()
