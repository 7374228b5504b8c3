"""End-to-end statement import: dedup, matching, rollback and reconciliation."""

from datetime import date
from decimal import Decimal

import pytest

from snt_billing.errors import PeriodClosedError, ValidationError
from snt_billing.models.accrual import PaymentCategory
from snt_billing.models.import_batch import ImportBatchStatus
from snt_billing.models.payment import Payment
from snt_billing.services.audit_service import AuditService
from snt_billing.services.import_service import StatementImportService, batch_to_dict
from snt_billing.services.ledger_service import LedgerService
from snt_billing.services.period_service import BillingPeriodService
from snt_billing.services.reconciliation_service import ReconciliationService

IVANOV_ROW = ["15.01.2025", "400,00", "Берёзовая, 12", "Иванов Иван Иванович", "Членский взнос", "row-1"]


@pytest.fixture
def membership_accrual(db_session, period, plots):
    return LedgerService(db_session).set_accrual_amount(
        period.id, plots["b12"].id, PaymentCategory.MEMBERSHIP, Decimal("1000")
    )


@pytest.fixture
def mixed_statement(build_statement):
    return build_statement(
        [
            IVANOV_ROW,
            ["16.01.2025", "300,00", "", "Неизвестный", "Возврат", "row-2"],
            ["32.01.2025", "100,00", "Берёзовая 14", "Петрова", "Членский", "row-3"],
            ["17.01.2025", "-100,00", "", "СНТ", "Комиссия", "row-4"],
            ["15.01.2025", "400,00", "Берёзовая 12", "Иванов", "Членский взнос", "ROW-1"],
        ]
    )


def _live_payments(db_session) -> list[Payment]:
    return db_session.query(Payment).filter(Payment.is_voided.is_(False)).all()


class TestReimportAndRollback:
    def test_double_import_creates_one_payment(
        self, db_session, period, plots, membership_accrual, build_statement
    ):
        service = StatementImportService(db_session)
        statement = build_statement([IVANOV_ROW])

        first = service.apply_import(statement, file_name="january.csv", actor="treasurer")
        second = service.apply_import(statement, file_name="january.csv", actor="treasurer")

        assert first.created == 1
        assert first.skipped == []
        assert second.created == 0
        assert second.skipped == [{"row_index": 2, "reason": "duplicate"}]

        [payment] = _live_payments(db_session)
        assert payment.plot_id == plots["b12"].id
        assert payment.fingerprint == "ref:row-1"
        assert payment.match_reason == "auto"
        assert payment.match_confidence == 1.0
        assert payment.import_batch_id == first.batch_id

        row = ReconciliationService(db_session).build_period_reconciliation(period.id).row_for(
            plots["b12"].id
        )
        assert row.paid == Decimal("400.00")
        assert row.balance == Decimal("-600.00")

    def test_rollback_twice(self, db_session, period, plots, membership_accrual, build_statement):
        service = StatementImportService(db_session)
        result = service.apply_import(build_statement([IVANOV_ROW]), actor="treasurer")

        first = service.rollback_batch(result.batch_id, actor="treasurer")
        second = service.rollback_batch(result.batch_id, actor="treasurer")

        assert first.voided == 1
        assert second.voided == 0
        batch = service.get_batch(result.batch_id)
        assert batch.status == ImportBatchStatus.ROLLED_BACK
        assert batch.rolled_back_at is not None
        assert batch.payments[0].void_reason == "import_rollback"
        actions = [e.action for e in AuditService.list_for(db_session, "import_batch", batch.id)]
        assert actions == ["import", "rollback"]

        reconciliation = ReconciliationService(db_session).build_period_reconciliation(period.id)
        assert reconciliation.row_for(plots["b12"].id).paid == Decimal("0.00")
        assert service.batch_total(result.batch_id) == Decimal("0.00")

    def test_reimport_after_rollback(
        self, db_session, period, plots, membership_accrual, build_statement
    ):
        service = StatementImportService(db_session)
        statement = build_statement([IVANOV_ROW])
        batch_id = service.apply_import(statement).batch_id
        service.rollback_batch(batch_id, reason="wrong file")

        again = service.apply_import(statement)

        assert again.created == 1
        assert len(_live_payments(db_session)) == 1
        assert db_session.query(Payment).count() == 2

    def test_rollback_releases_allocations(
        self, db_session, period, plots, membership_accrual, build_statement
    ):
        service = StatementImportService(db_session)
        batch_id = service.apply_import(build_statement([IVANOV_ROW])).batch_id
        [payment] = _live_payments(db_session)
        assert [a.amount for a in payment.allocations] == [Decimal("400.00")]

        service.rollback_batch(batch_id)

        assert payment.allocations == []

    def test_rollback_blocked_by_closed_period(
        self, db_session, period, plots, membership_accrual, build_statement
    ):
        service = StatementImportService(db_session)
        batch_id = service.apply_import(build_statement([IVANOV_ROW])).batch_id
        BillingPeriodService(db_session).close_period(period.id)

        with pytest.raises(PeriodClosedError):
            service.rollback_batch(batch_id)
        assert len(_live_payments(db_session)) == 1
        assert service.get_batch(batch_id).status == ImportBatchStatus.COMPLETED

    def test_rollback_blocked_by_allocation_in_closed_period(
        self, db_session, period, plots, build_statement
    ):
        periods = BillingPeriodService(db_session)
        december = periods.create_period("Декабрь 2024", date(2024, 12, 1), date(2024, 12, 31))
        LedgerService(db_session).set_accrual_amount(
            december.id, plots["b12"].id, PaymentCategory.MEMBERSHIP, Decimal("500")
        )
        service = StatementImportService(db_session)
        batch_id = service.apply_import(build_statement([IVANOV_ROW])).batch_id
        [payment] = _live_payments(db_session)
        assert [a.accrual.period_id for a in payment.allocations] == [december.id]
        periods.close_period(december.id)

        with pytest.raises(PeriodClosedError):
            service.rollback_batch(batch_id)

        assert len(payment.allocations) == 1
        assert service.get_batch(batch_id).status == ImportBatchStatus.COMPLETED


class TestPreviewAndApply:
    def test_preview_totals(self, db_session, period, plots, mixed_statement):
        preview = StatementImportService(db_session).preview(mixed_statement)

        assert preview.totals == {
            "total": 5,
            "matched": 1,
            "unmatched": 1,
            "duplicates": 1,
            "invalid": 1,
            "skipped_out": 1,
            "period_closed": 0,
        }
        assert [item.status for item in preview.rows] == [
            "ready",
            "unmatched",
            "invalid",
            "skipped_out",
            "duplicate",
        ]
        assert preview.rows[2].to_dict()["errors"] == ["invalid_date"]
        assert db_session.query(Payment).count() == 0

    def test_apply_lists_skipped_rows(self, db_session, period, plots, mixed_statement):
        result = StatementImportService(db_session).apply_import(
            mixed_statement, file_name="mixed.csv", comment="January"
        )

        assert result.created == 1
        assert result.skipped == [
            {"row_index": 3, "reason": "unmatched"},
            {"row_index": 4, "reason": "invalid"},
            {"row_index": 6, "reason": "duplicate"},
        ]
        data = batch_to_dict(StatementImportService(db_session).get_batch(result.batch_id))
        assert data["status"] == "completed"
        assert data["total_rows"] == 5
        assert data["created_count"] == 1
        assert data["skipped_count"] == 3
        assert data["comment"] == "January"

    def test_overrides_act_as_manual_match(self, db_session, period, plots, mixed_statement):
        result = StatementImportService(db_session).apply_import(
            mixed_statement, overrides={3: plots["s12"].id}
        )

        assert result.created == 2
        manual = db_session.query(Payment).filter(Payment.plot_id == plots["s12"].id).one()
        assert manual.match_reason == "manual"
        assert manual.match_confidence == 1.0

    def test_override_to_unknown_plot(self, db_session, period, plots, mixed_statement):
        with pytest.raises(ValidationError, match="does not exist"):
            StatementImportService(db_session).preview(mixed_statement, overrides={3: 999})

    def test_ambiguous_row_keeps_candidates(self, db_session, period, plots, build_statement):
        statement = build_statement([["15.01.2025", "500", "", "Кто-то", "членские уч. 12", ""]])
        [item] = StatementImportService(db_session).preview(statement).rows

        data = item.to_dict()
        assert data["status"] == "unmatched"
        assert data["match_reason"] == "ambiguous"
        assert data["candidates"] == [plots["b12"].id, plots["s12"].id]

    def test_closed_period_rows_skipped(self, db_session, period, plots, build_statement):
        BillingPeriodService(db_session).close_period(period.id)

        result = StatementImportService(db_session).apply_import(build_statement([IVANOV_ROW]))

        assert result.created == 0
        assert result.skipped == [{"row_index": 2, "reason": "period_closed"}]

    def test_payment_outside_periods_imported(self, db_session, period, plots, build_statement):
        row = ["03.03.2025", "250,00", "Сосновая 12", "Сидоров Пётр", "Целевой взнос", ""]
        result = StatementImportService(db_session).apply_import(build_statement([row]))

        assert result.created == 1
        [payment] = _live_payments(db_session)
        assert payment.category == PaymentCategory.TARGET
        assert payment.fingerprint == f"{plots['s12'].id}|target|2025-03-03|250.00|целевой взнос"

    def test_row_numbers_do_not_collide_across_statements(
        self, db_session, period, plots, build_statement
    ):
        header = ["№ п/п", "Дата", "Сумма", "Участок", "Назначение"]
        january = build_statement(
            [["1", "15.01.2025", "400,00", "Берёзовая, 12", "Членский взнос"]], header=header
        )
        february = build_statement(
            [["1", "15.02.2025", "700,00", "Берёзовая, 14", "Членский взнос"]], header=header
        )
        service = StatementImportService(db_session)

        first = service.apply_import(january)
        second = service.apply_import(february)

        assert (first.created, second.created) == (1, 1)
        assert second.skipped == []
        fingerprints = sorted(p.fingerprint for p in _live_payments(db_session))
        assert fingerprints == [
            f"{plots['b12'].id}|membership|2025-01-15|400.00|членский взнос",
            f"{plots['b14'].id}|membership|2025-02-15|700.00|членский взнос",
        ]

    def test_auto_allocate_can_be_disabled(
        self, db_session, period, plots, membership_accrual, build_statement
    ):
        StatementImportService(db_session).apply_import(
            build_statement([IVANOV_ROW]), auto_allocate=False
        )
        [payment] = _live_payments(db_session)
        assert payment.allocations == []
