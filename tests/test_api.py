import io

from openpyxl import load_workbook

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.master import Company
from payroll_api.models.employee import Employee


def _mk_app():
    return create_app(SQLALCHEMY_DATABASE_URI="sqlite:///:memory:", TESTING=True)


def _seed():
    c = Company(code="C1", name="Test Co")
    db.session.add(c); db.session.commit()
    e1 = Employee(company_id=c.id, code="EMP001", first_name="John", last_name="Doe")
    e2 = Employee(company_id=c.id, code="EMP002", first_name="Asha", last_name="Patil")
    db.session.add_all([e1, e2]); db.session.commit()
    return c.id, e1.id, e2.id


def test_health():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        r = app.test_client().get("/api/v1/health")
        assert r.status_code == 200
        assert r.get_json() == {"success": True, "data": {"status": "ok"}}


def test_structure_put_get_and_errors():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, _ = _seed()
        client = app.test_client()

        r = client.get(f"/api/v1/salary-structures/{e1}")
        assert r.status_code == 404
        assert r.get_json()["error"]["code"] == "EMPLOYEE_NOT_FOUND"

        r = client.put(f"/api/v1/salary-structures/{e1}", json={
            "basic": 15225, "da": 775, "totalDays": 30, "paidDays": 30,
            "customAllowances": [{"label": "Medical", "amount": 250}],
            "taxRegime": "new", "updatedBy": "hr",
        })
        assert r.status_code == 200
        body = r.get_json()["data"]
        assert body["tax_regime"] == "new"
        assert body["net_salary"] == 14802.0
        assert body["breakdown"]["hra"] == 800.0

        # partial update keeps the rest
        r = client.put(f"/api/v1/salary-structures/{e1}", json={"inputs": {"paidDays": 15}})
        data = r.get_json()["data"]
        assert data["inputs"]["basic"] == 15225.0
        assert data["inputs"]["paid_days"] == 15.0
        assert data["tax_regime"] == "new"

        r = client.put(f"/api/v1/salary-structures/{e1}", json={"paidDays": 45})
        assert r.status_code == 422
        assert r.get_json()["error"]["code"] == "INVALID_PERIOD"

        r = client.put(f"/api/v1/salary-structures/{e1}", json={"taxRegime": "flat"})
        assert r.status_code == 422
        assert r.get_json()["error"]["code"] == "INVALID_TAX_REGIME"

        r = client.get(f"/api/v1/salary-structures/{e1}")
        assert r.get_json()["data"]["inputs"]["paid_days"] == 15.0


def test_preview_does_not_store():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, _ = _seed()
        r = app.test_client().post("/api/v1/salary-structures/preview",
                                   json={"company_id": cid, "inputs": {"basic": 15225, "da": 775}})
        assert r.status_code == 200
        assert r.get_json()["data"]["net_salary"] == 14554.0
        assert db.session.get(Employee, e1).salary_structure is None


def test_bulk_edit():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, e2 = _seed()
        client = app.test_client()
        client.put(f"/api/v1/salary-structures/{e1}", json={"basic": 15225, "da": 775})

        r = client.post("/api/v1/salary-structures/bulk-edit", json={
            "employee_ids": [e1, e2, 9999],
            "changes": {"advance": 1000, "taxRegime": "new"},
        })
        assert r.status_code == 200
        payload = r.get_json()
        assert payload["meta"]["succeeded"] == 2
        assert payload["meta"]["skipped"] == 1
        s1 = client.get(f"/api/v1/salary-structures/{e1}").get_json()["data"]
        assert s1["net_salary"] == 13554.0
        assert s1["tax_regime"] == "new"

        r = client.post("/api/v1/salary-structures/bulk-edit", json={"employee_ids": [], "changes": {}})
        assert r.status_code == 400


def test_import_upload_and_sample():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, _ = _seed()
        client = app.test_client()

        r = client.get("/api/v1/salary-structures/import/sample")
        assert r.status_code == 200
        assert r.mimetype.endswith("spreadsheetml.sheet")
        wb = load_workbook(io.BytesIO(r.data))
        assert wb.active.cell(row=1, column=1).value == "employeeId"

        csv_bytes = b"employeeId,basic,da\nEMP001,15225,775\nEMP404,1000,0\n"
        r = client.post("/api/v1/salary-structures/import", data={
            "company_id": str(cid),
            "file": (io.BytesIO(csv_bytes), "structures.csv"),
        }, content_type="multipart/form-data")
        assert r.status_code == 200
        body = r.get_json()
        assert body["meta"] == {"succeeded": 1, "skipped": 1, "failed": 0, "cancelled": 0}

        r = client.post("/api/v1/salary-structures/import", json={"company_id": cid, "rows": "nope"})
        assert r.status_code == 400


def test_import_row_limit_from_config():
    app = create_app(SQLALCHEMY_DATABASE_URI="sqlite:///:memory:", PAYROLL_IMPORT_MAX_ROWS=1)
    with app.app_context():
        db.create_all()
        cid, _, _ = _seed()
        r = app.test_client().post("/api/v1/salary-structures/import", json={
            "company_id": cid, "rows": [{"employeeId": "EMP001"}, {"employeeId": "EMP002"}],
        })
        assert r.status_code == 422


def test_run_records_status_and_summary():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, e2 = _seed()
        client = app.test_client()
        for e in (e1, e2):
            client.put(f"/api/v1/salary-structures/{e}", json={"basic": 15225, "da": 775})

        r = client.post("/api/v1/payroll/runs", json={"company_id": cid, "month": 9, "year": 2025,
                                                      "processedBy": "hr"})
        assert r.status_code == 201
        assert r.get_json()["meta"]["succeeded"] == 2

        r = client.post("/api/v1/payroll/runs", json={"company_id": cid, "month": 9, "year": 2025})
        assert r.status_code == 409
        assert r.get_json()["error"]["code"] == "PERIOD_ALREADY_PROCESSED"

        r = client.get(f"/api/v1/payroll/records?company_id={cid}&month=9&year=2025")
        items = r.get_json()["data"]
        assert len(items) == 2
        assert items[0]["status"] == "pending"
        assert items[0]["net_salary"] == 14554.0
        assert items[0]["processed_by"] == "hr"

        rid = items[0]["id"]
        r = client.patch(f"/api/v1/payroll/records/{rid}/status", json={"status": "paid"})
        assert r.status_code == 409
        r = client.patch(f"/api/v1/payroll/records/{rid}/status", json={"status": "approved"})
        assert r.get_json()["data"]["status"] == "approved"
        r = client.patch("/api/v1/payroll/records/9999/status", json={"status": "approved"})
        assert r.status_code == 404

        r = client.get(f"/api/v1/payroll/records?company_id={cid}&month=9&year=2025&status=approved")
        assert [x["id"] for x in r.get_json()["data"]] == [rid]

        r = client.get(f"/api/v1/payroll/summary?company_id={cid}&month=9&year=2025")
        s = r.get_json()["data"]
        assert s["processed_records"] == 2
        assert s["total_net_salary"] == 29108.0
        assert s["by_status"]["approved"] == 1

        r = client.get("/api/v1/payroll/summary?month=9&year=2025")
        assert r.status_code == 400


def test_partial_run_returns_207_and_retry():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, e2 = _seed()
        client = app.test_client()
        client.put(f"/api/v1/salary-structures/{e1}", json={"basic": 15225, "da": 775})

        r = client.post("/api/v1/payroll/runs", json={"company_id": cid, "month": 9, "year": 2025})
        assert r.status_code == 207
        err = r.get_json()["error"]
        assert err["code"] == "PARTIAL_RUN_FAILURE"
        assert err["detail"]["failed"][0]["ref"] == e2

        client.put(f"/api/v1/salary-structures/{e2}", json={"basic": 9000})
        r = client.post("/api/v1/payroll/runs/retry", json={"company_id": cid, "month": 9, "year": 2025})
        assert r.status_code == 200
        assert r.get_json()["data"]["succeeded"] == [e2]

        r = client.post("/api/v1/payroll/runs/retry", json={"company_id": cid, "month": 10, "year": 2025})
        assert r.status_code == 422


def test_settings_endpoint_changes_calculation():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, _ = _seed()
        client = app.test_client()

        r = client.get(f"/api/v1/payroll/settings/{cid}")
        assert r.get_json()["data"]["hra_percentage"] == 5.0

        r = client.put(f"/api/v1/payroll/settings/{cid}", json={"hraPercentage": 10})
        assert r.status_code == 200
        assert r.get_json()["data"]["hra_percentage"] == 10.0

        r = client.put(f"/api/v1/payroll/settings/{cid}", json={"pf_employee_percentage": -2})
        assert r.status_code == 422

        r = client.put(f"/api/v1/salary-structures/{e1}", json={"basic": 15225, "da": 775})
        assert r.get_json()["data"]["breakdown"]["hra"] == 1600.0

        assert client.get("/api/v1/payroll/settings/999").status_code == 404


def test_non_finite_numbers_are_rejected():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        cid, e1, _ = _seed()
        client = app.test_client()

        r = client.post("/api/v1/salary-structures/preview", json={"inputs": {"basic": "NaN", "da": 775}})
        assert r.status_code == 422
        assert r.get_json()["error"]["code"] == "INVALID_INPUTS"

        r = client.post("/api/v1/salary-structures/preview",
                        json={"inputs": {"basic": 15225, "da": 775, "totalDays": "Infinity"}})
        assert r.status_code == 422
        assert r.get_json()["error"]["code"] == "INVALID_INPUTS"

        r = client.put(f"/api/v1/salary-structures/{e1}", json={"basic": "-Infinity", "da": 775})
        assert r.status_code == 422
        assert r.get_json()["error"]["code"] == "INVALID_INPUTS"

        r = client.put(f"/api/v1/salary-structures/{e1}", json={"basic": 15225, "da": 775, "grossSalary": "NaN"})
        assert r.status_code == 422
        assert r.get_json()["error"]["code"] == "INVALID_INPUTS"
        assert db.session.get(Employee, e1).salary_structure is None

        r = client.put(f"/api/v1/payroll/settings/{cid}", json={"hraPercentage": "NaN"})
        assert r.status_code == 422
        assert client.get(f"/api/v1/payroll/settings/{cid}").get_json()["data"]["hra_percentage"] == 5.0
