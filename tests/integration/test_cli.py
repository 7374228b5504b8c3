"""Tests for the snt-billing command line."""

import json
import logging
from decimal import Decimal

import pytest

from snt_billing.cli import main as cli
from snt_billing.models.accrual import PaymentCategory
from snt_billing.models.import_batch import ImportBatch, ImportBatchStatus
from snt_billing.models.payment import Payment
from snt_billing.services.ledger_service import LedgerService
from snt_billing.services.period_service import BillingPeriodService

STATEMENT_ROW = ["15.01.2025", "400,00", "Берёзовая, 12", "Иванов Иван Иванович", "Членский взнос", "row-1"]


@pytest.fixture
def run_cli(db_session, monkeypatch, capsys):
    """Run the CLI against the test session and return (exit code, parsed stdout)."""
    # Keep stdout clean for JSON parsing
    monkeypatch.setattr(cli, "setup_server_logging", lambda *args, **kwargs: None)

    def _run(*argv: str):
        code = cli.main(list(argv), session_factory=lambda: db_session)
        out = capsys.readouterr().out
        return code, json.loads(out) if out.strip() else None

    return _run


@pytest.fixture
def statement_file(tmp_path, build_statement):
    path = tmp_path / "january.csv"
    path.write_text(build_statement([STATEMENT_ROW], bom=True), encoding="utf-8", newline="")
    return path


@pytest.fixture
def ids(db_session, period, plots):
    LedgerService(db_session).set_accrual_amount(
        period.id, plots["b12"].id, PaymentCategory.MEMBERSHIP, Decimal("1000")
    )
    # main() closes the session, so keep plain ids rather than ORM objects
    return {"period": period.id, "b12": plots["b12"].id}


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_init_db(run_cli):
    code, out = run_cli("init-db")
    assert code == 0
    assert out is None


def test_import_and_rollback(run_cli, db_session, ids, statement_file):
    code, out = run_cli("--actor", "treasurer", "import", str(statement_file), "--comment", "Январь")

    assert code == 0
    assert out["created"] == 1
    assert out["skipped"] == []
    batch = db_session.get(ImportBatch, out["batch_id"])
    assert batch.file_name == "january.csv"
    assert batch.actor == "treasurer"
    assert batch.comment == "Январь"

    code, out = run_cli("rollback", str(out["batch_id"]), "--reason", "wrong file")

    assert code == 0
    assert out["voided"] == 1
    payment = db_session.query(Payment).one()
    assert payment.is_voided
    assert payment.void_reason == "wrong file"
    assert db_session.get(ImportBatch, out["batch_id"]).status == ImportBatchStatus.ROLLED_BACK


def test_import_preview_writes_nothing(run_cli, db_session, ids, statement_file):
    code, out = run_cli("import", str(statement_file), "--preview")

    assert code == 0
    assert out["totals"]["matched"] == 1
    assert out["rows"][0]["plot_id"] == ids["b12"]
    assert db_session.query(Payment).count() == 0


def test_import_without_allocation(run_cli, db_session, ids, statement_file):
    code, _ = run_cli("import", str(statement_file), "--no-allocate")
    assert code == 0
    assert db_session.query(Payment).one().allocations == []


def test_missing_file(run_cli, ids, tmp_path):
    code, out = run_cli("import", str(tmp_path / "missing.csv"))
    assert code == 2
    assert out is None


def test_unknown_batch(run_cli, ids):
    code, out = run_cli("rollback", "404")
    assert code == 1
    assert out == {"ok": False, "error": {"code": "not_found", "message": "Import batch 404 not found"}}


def test_reconcile_json(run_cli, ids, statement_file):
    run_cli("import", str(statement_file))

    code, out = run_cli("reconcile", str(ids["period"]))

    assert code == 0
    assert out["totals"] == {
        "accrued": "1000.00",
        "paid": "400.00",
        "balance": "-600.00",
        "debt": "600.00",
    }


def test_reconcile_debtors(run_cli, ids):
    code, out = run_cli("reconcile", str(ids["period"]), "--debtors")
    assert code == 0
    assert [row["plot_id"] for row in out] == [ids["b12"]]
    assert out[0]["debt"] == "1000.00"


def test_reconcile_update_paid(run_cli, db_session, ids, statement_file):
    run_cli("import", str(statement_file))

    code, _ = run_cli("--actor", "treasurer", "reconcile", str(ids["period"]), "--update-paid")

    assert code == 0
    [accrual] = LedgerService(db_session).list_accruals(ids["period"], ids["b12"])
    assert accrual.amount_paid == Decimal("400.00")


def test_reconcile_csv(run_cli, ids, tmp_path):
    target = tmp_path / "debtors.csv"

    code, out = run_cli("reconcile", str(ids["period"]), "--debtors", "--csv", str(target))

    assert code == 0
    assert out is None
    content = target.read_bytes().decode("utf-8")
    assert content.startswith("\ufeffУчасток;Владелец;")
    assert content.splitlines()[1] == "Берёзовая, 12;Иванов Иван Иванович;1000.00;0.00;0.00;1000.00"


def test_closed_period_error(run_cli, db_session, ids):
    BillingPeriodService(db_session).close_period(ids["period"])

    code, out = run_cli("reconcile", str(ids["period"]), "--update-paid")

    assert code == 1
    assert out["error"]["code"] == "period_closed"


def test_logs_stay_off_stdout(db_session, ids, statement_file, capsys):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        code = cli.main(
            ["--log-level", "INFO", "import", str(statement_file)],
            session_factory=lambda: db_session,
        )
        captured = capsys.readouterr()
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)

    assert code == 0
    assert json.loads(captured.out)["created"] == 1
    assert "Imported statement january.csv" in captured.err
