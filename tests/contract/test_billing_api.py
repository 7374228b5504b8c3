"""Contract tests for the billing HTTP API: envelopes, status codes, error codes."""

from fastapi import status

from snt_billing.services.audit_service import AuditService

IVANOV_ROW = ["15.01.2025", "400,00", "Берёзовая, 12", "Иванов Иван Иванович", "Членский взнос", "row-1"]


def _set_accrual(client, period_id, plot_id, amount="1000", category="membership"):
    return client.put(
        f"/api/billing/periods/{period_id}/accruals",
        json={"plot_id": plot_id, "category": category, "amount": amount},
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "data": {"status": "ok"}}


class TestPeriods:
    def test_create_and_get(self, client, db_session):
        response = client.post(
            "/api/billing/periods",
            json={"title": "Январь 2025", "date_from": "2025-01-01", "date_to": "2025-01-31"},
            headers={"X-Actor": "treasurer"},
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["ok"] is True
        assert body["data"]["status"] == "draft"
        period_id = body["data"]["id"]
        assert AuditService.list_for(db_session, "period", period_id)[0].actor == "treasurer"

        response = client.get(f"/api/billing/periods/{period_id}")
        assert response.json()["data"]["title"] == "Январь 2025"

    def test_overlap_is_validation_error(self, client, period):
        response = client.post(
            "/api/billing/periods",
            json={"title": "Другой", "date_from": "2025-01-15", "date_to": "2025-02-15"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_malformed_body(self, client):
        response = client.post("/api/billing/periods", json={"title": "Январь 2025"})
        assert response.status_code == 422
        body = response.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "validation_error"
        assert "date_from" in body["error"]["message"]

    def test_not_found(self, client):
        response = client.get("/api/billing/periods/999")
        assert response.status_code == 404
        assert response.json() == {
            "ok": False,
            "error": {"code": "not_found", "message": "Period 999 not found"},
        }

    def test_lifecycle(self, client, period):
        approved = client.post(f"/api/billing/periods/{period.id}/approve")
        assert approved.json()["data"]["status"] == "approved"

        closed = client.post(f"/api/billing/periods/{period.id}/close")
        assert closed.json()["data"]["status"] == "closed"
        assert closed.json()["data"]["closed_at"] is not None

        again = client.post(f"/api/billing/periods/{period.id}/close")
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "period_closed"

    def test_accruals(self, client, period, plots):
        response = _set_accrual(client, period.id, plots["b12"].id)
        assert response.status_code == 200
        assert response.json()["data"]["amount_accrued"] == "1000.00"

        generated = client.post(
            f"/api/billing/periods/{period.id}/accruals/generate",
            json={"category": "target", "amount": "2500"},
        )
        assert generated.json()["data"]["created_count"] == 3

        listed = client.get(f"/api/billing/periods/{period.id}/accruals", params={"plot_id": plots["b12"].id})
        assert [a["category"] for a in listed.json()["data"]] == ["membership", "target"]

    def test_closed_period_rejects_accruals(self, client, period, plots):
        client.post(f"/api/billing/periods/{period.id}/close")
        response = _set_accrual(client, period.id, plots["b12"].id)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "period_closed"


class TestPlots:
    def test_create_and_search(self, client):
        response = client.post(
            "/api/billing/plots",
            json={"street": "Лесная", "number": "7", "owner_name": "Орлова Мария"},
        )
        assert response.status_code == 201
        assert response.json()["data"]["label"] == "Лесная, 7"

        found = client.get("/api/billing/plots", params={"q": "орлова"}).json()["data"]
        assert [plot["number"] for plot in found] == ["7"]

    def test_duplicate_plot(self, client, plots):
        response = client.post("/api/billing/plots", json={"street": "Березовая", "number": "12"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_credit(self, client, period, plots):
        client.post(
            "/api/billing/payments",
            json={"plot_id": plots["s12"].id, "amount": "300", "paid_at": "2025-01-10"},
        )
        response = client.get(f"/api/billing/plots/{plots['s12'].id}/credit")
        assert response.json()["data"] == {"plot_id": plots["s12"].id, "credit": "300.00"}


class TestPayments:
    def _create(self, client, plot_id, **extra):
        payload = {"plot_id": plot_id, "amount": "400", "paid_at": "2025-01-15", **extra}
        return client.post("/api/billing/payments", json=payload, headers={"X-Actor": "office"})

    def test_create(self, client, period, plots):
        _set_accrual(client, period.id, plots["b12"].id)

        response = self._create(client, plots["b12"].id, reference="K-1", auto_allocate=True)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["amount"] == "400.00"
        assert data["match_status"] == "matched"
        assert data["match_reason"] == "manual"
        assert data["candidates"] == [plots["b12"].id]
        assert data["allocation"]["status"] == "allocated"

    def test_duplicate(self, client, period, plots):
        self._create(client, plots["b12"].id, reference="K-1")
        response = self._create(client, plots["b12"].id, reference="K-1")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "duplicate_payment"

    def test_closed_period(self, client, period, plots):
        client.post(f"/api/billing/periods/{period.id}/close")
        response = self._create(client, plots["b12"].id)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "period_closed"

    def test_schema_validation(self, client, plots):
        response = client.post(
            "/api/billing/payments",
            json={"plot_id": plots["b12"].id, "amount": "-5", "paid_at": "2025-01-15"},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"

    def test_void_and_list(self, client, period, plots):
        payment_id = self._create(client, plots["b12"].id).json()["data"]["id"]

        voided = client.post(f"/api/billing/payments/{payment_id}/void", json={"reason": "typo"})
        assert voided.json()["data"]["is_voided"] is True

        assert client.get("/api/billing/payments").json()["data"] == []
        listed = client.get("/api/billing/payments", params={"include_voided": True}).json()["data"]
        assert [p["id"] for p in listed] == [payment_id]

    def test_manual_match(self, client, period, plots):
        payment_id = self._create(client, plots["b12"].id).json()["data"]["id"]

        response = client.post(
            f"/api/billing/payments/{payment_id}/match", json={"plot_id": plots["b14"].id}
        )

        assert response.json()["data"]["plot_id"] == plots["b14"].id
        assert response.json()["data"]["match_reason"] == "manual"

    def test_allocate_and_unapply(self, client, period, plots):
        accrual_id = _set_accrual(client, period.id, plots["b12"].id).json()["data"]["id"]
        payment_id = self._create(client, plots["b12"].id).json()["data"]["id"]

        allocated = client.post(
            f"/api/billing/payments/{payment_id}/allocate",
            json={"accrual_id": accrual_id, "amount": "150"},
        )
        assert allocated.json()["data"]["allocation"]["allocated"] == "150.00"

        unapplied = client.post(f"/api/billing/payments/{payment_id}/unapply").json()["data"]
        assert unapplied["removed"] == 1
        assert unapplied["payment"]["auto_allocate_disabled"] is True
        assert unapplied["payment"]["allocation"]["status"] == "unallocated"

    def test_missing_payment(self, client):
        response = client.get("/api/billing/payments/77")
        assert response.status_code == 404


class TestImport:
    def test_preview_apply_rollback(self, client, period, plots, build_statement):
        statement = build_statement([IVANOV_ROW])

        preview = client.post("/api/billing/import/preview", json={"content": statement})
        assert preview.status_code == 200
        assert preview.json()["data"]["totals"]["matched"] == 1

        applied = client.post(
            "/api/billing/import",
            json={"content": statement, "file_name": "january.csv"},
            headers={"X-Actor": "treasurer"},
        )
        assert applied.status_code == 201
        batch_id = applied.json()["data"]["batch_id"]
        assert applied.json()["data"]["created"] == 1

        repeat = client.post("/api/billing/import", json={"content": statement})
        assert repeat.json()["data"]["skipped"] == [{"row_index": 2, "reason": "duplicate"}]

        batches = client.get("/api/billing/import/batches").json()["data"]
        assert [b["id"] for b in batches][-1] == batch_id

        first = client.post(f"/api/billing/import/batches/{batch_id}/rollback")
        second = client.post(
            f"/api/billing/import/batches/{batch_id}/rollback", json={"reason": "again"}
        )
        assert first.json()["data"] == {"batch_id": batch_id, "voided": 1}
        assert second.json()["data"] == {"batch_id": batch_id, "voided": 0}
        batch = client.get(f"/api/billing/import/batches/{batch_id}").json()["data"]
        assert batch["status"] == "rolled_back"

    def test_overrides(self, client, period, plots, build_statement):
        statement = build_statement([["15.01.2025", "100", "", "", "Взнос", ""]])
        response = client.post(
            "/api/billing/import",
            json={"content": statement, "overrides": {"2": plots["b14"].id}},
        )
        assert response.json()["data"]["created"] == 1

    def test_bad_statement(self, client):
        response = client.post("/api/billing/import/preview", json={"content": "a;b\r\n1;2\r\n"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_unknown_batch(self, client):
        response = client.post("/api/billing/import/batches/5/rollback")
        assert response.status_code == 404


class TestReports:
    def _seed(self, client, period, plots):
        _set_accrual(client, period.id, plots["b12"].id)
        client.post(
            "/api/billing/payments",
            json={"plot_id": plots["b12"].id, "amount": "400", "paid_at": "2025-01-15"},
        )

    def test_reconciliation(self, client, period, plots):
        self._seed(client, period, plots)

        data = client.get(f"/api/billing/periods/{period.id}/reconciliation").json()["data"]

        assert data["totals"]["balance"] == "-600.00"
        assert data["rows"][0]["plot"] == "Берёзовая, 12"

    def test_reconciliation_write_back(self, client, period, plots):
        self._seed(client, period, plots)

        response = client.post(f"/api/billing/periods/{period.id}/reconciliation")

        assert response.status_code == 200
        accruals = client.get(f"/api/billing/periods/{period.id}/accruals").json()["data"]
        assert accruals[0]["amount_paid"] == "400.00"

    def test_debtors(self, client, period, plots):
        self._seed(client, period, plots)
        debtors = client.get(f"/api/billing/periods/{period.id}/debtors").json()["data"]
        assert [row["debt"] for row in debtors] == ["600.00"]
        none = client.get(f"/api/billing/periods/{period.id}/debtors", params={"min_debt": "600"})
        assert none.json()["data"] == []

    def test_csv_exports(self, client, period, plots):
        self._seed(client, period, plots)

        for url in (
            f"/api/billing/periods/{period.id}/reconciliation.csv",
            f"/api/billing/periods/{period.id}/debtors.csv",
            "/api/billing/payments.csv",
        ):
            response = client.get(url)
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/csv")
            assert "attachment" in response.headers["content-disposition"]
            assert response.content.startswith(b"\xef\xbb\xbf")
            assert b"\r\n" in response.content

    def test_csv_unknown_period(self, client):
        response = client.get("/api/billing/periods/9/reconciliation.csv")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"
