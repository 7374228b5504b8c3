"""Command line entry point: ``snt-billing``.

Examples:
    snt-billing init-db
    snt-billing import statement.csv --preview
    snt-billing import statement.csv --actor treasurer
    snt-billing rollback 12
    snt-billing reconcile 3 --csv reconciliation.csv
    snt-billing reconcile 3 --debtors --csv debtors.csv
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable

from sqlalchemy.orm import Session

from snt_billing.config import settings
from snt_billing.errors import AppError
from snt_billing.services.logging import setup_server_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="snt-billing", description="SNT billing reconciliation")
    parser.add_argument("--actor", default=None, help="Staff member recorded in the audit log")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")

    import_parser = subparsers.add_parser("import", help="Import a bank statement CSV")
    import_parser.add_argument("file", type=Path, help="Statement file")
    import_parser.add_argument("--preview", action="store_true", help="Show what would be imported")
    import_parser.add_argument("--comment", default=None, help="Comment stored on the batch")
    import_parser.add_argument(
        "--no-allocate",
        action="store_true",
        help="Do not apply imported payments to open accruals",
    )

    rollback_parser = subparsers.add_parser("rollback", help="Void all payments of an import batch")
    rollback_parser.add_argument("batch_id", type=int)
    rollback_parser.add_argument("--reason", default=None)

    reconcile_parser = subparsers.add_parser("reconcile", help="Reconcile a billing period")
    reconcile_parser.add_argument("period_id", type=int)
    reconcile_parser.add_argument("--include-zero", action="store_true")
    reconcile_parser.add_argument(
        "--update-paid", action="store_true", help="Write paid sums back to accruals"
    )
    reconcile_parser.add_argument("--debtors", action="store_true", help="Only plots with debt")
    reconcile_parser.add_argument("--csv", type=Path, default=None, help="Write CSV to this path")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _init_db(db: Session, args) -> None:
    from snt_billing.models import Base

    Base.metadata.create_all(bind=db.get_bind())
    logger.info("Database tables initialized")


def _import(db: Session, args) -> None:
    from snt_billing.services.import_service import StatementImportService

    content = args.file.read_bytes()
    service = StatementImportService(db)
    if args.preview:
        _print_json(service.preview(content).to_dict())
        return
    result = service.apply_import(
        content,
        file_name=args.file.name,
        actor=args.actor,
        comment=args.comment,
        auto_allocate=False if args.no_allocate else None,
    )
    _print_json(result.to_dict())


def _rollback(db: Session, args) -> None:
    from snt_billing.services.import_service import StatementImportService

    result = StatementImportService(db).rollback_batch(
        args.batch_id, actor=args.actor, reason=args.reason
    )
    _print_json(result.to_dict())


def _reconcile(db: Session, args) -> None:
    from snt_billing.services.export_service import ExportService
    from snt_billing.services.reconciliation_service import ReconciliationService

    if args.csv:
        exporter = ExportService(db)
        if args.debtors:
            content = exporter.debtors_csv(args.period_id)
        else:
            content = exporter.reconciliation_csv(args.period_id, include_zero=args.include_zero)
        args.csv.write_text(content, encoding="utf-8", newline="")
        logger.info("Wrote %s", args.csv)
        return

    service = ReconciliationService(db)
    if args.debtors:
        _print_json([row.to_dict() for row in service.list_debtors(args.period_id)])
        return
    reconciliation = service.build_period_reconciliation(
        args.period_id,
        include_zero=args.include_zero,
        update_accrual_paid=args.update_paid,
        actor=args.actor,
    )
    _print_json(reconciliation.to_dict())


COMMANDS: dict[str, Callable[[Session, argparse.Namespace], None]] = {
    "init-db": _init_db,
    "import": _import,
    "rollback": _rollback,
    "reconcile": _reconcile,
}


def main(argv: list[str] | None = None, session_factory: Callable[[], Session] | None = None) -> int:
    """Run a CLI command; returns the process exit code."""
    args = build_parser().parse_args(argv)
    # stdout carries the JSON result
    setup_server_logging(
        settings.log_file, args.log_level or settings.log_level, stream=sys.stderr
    )

    if session_factory is None:
        from snt_billing.services import SessionLocal

        session_factory = SessionLocal

    db = session_factory()
    try:
        COMMANDS[args.command](db, args)
    except AppError as e:
        logger.error("%s failed: %s (%s)", args.command, e.message, e.code)
        _print_json({"ok": False, "error": {"code": e.code, "message": e.message}})
        return 1
    except OSError as e:
        logger.error("%s failed: %s", args.command, e)
        return 2
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
