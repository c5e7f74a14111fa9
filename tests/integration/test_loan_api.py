"""Integration tests for loan intake, lifecycle actions and balances"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from stock247_gateway.infrastructure.database.models import AuditLog, Disbursement, LoanApplication
from stock247_gateway.infrastructure.database.repositories import AuditRepository

UNKNOWN_ID = "3f2a9c41-7d7e-4a53-9a8c-0d9a1b2c3d4e"


def sms_types(db: Session, loan_id) -> list:
    entries = AuditRepository(db).get_by_entity(loan_id, action="sms_notification")
    return [e.details["notification_type"] for e in entries]


def test_create_loan(client: TestClient, db: Session):
    response = client.post(
        "/v1/loans",
        json={
            "user_id": "user_1",
            "business_name": "Kilimani Wines & Spirits",
            "owner_phone": "0712 345 678",
            "loan_amount": 50000,
            "loan_purpose": "Restock for the holidays",
            "distributor_paybill": "522522",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["owner_phone"] == "254712345678"
    assert data["loan_amount"] == 50000
    assert len(AuditRepository(db).get_by_entity(data["id"], action="application_submitted")) == 1


def test_create_loan_rejects_non_positive_amount(client: TestClient, db: Session):
    response = client.post(
        "/v1/loans",
        json={"user_id": "user_1", "business_name": "Shop", "owner_phone": "0712345678", "loan_amount": 0},
    )

    assert response.status_code == 422
    assert db.query(LoanApplication).count() == 0


def test_get_loan_with_balance(client: TestClient, make_loan, add_repayment):
    loan = make_loan()
    add_repayment(loan, amount=Decimal("30000"), status="paid")
    add_repayment(loan, amount=Decimal("5000"), checkout_request_id="ws_CO_101", status="failed")

    response = client.get(f"/v1/loans/{loan.id}")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "disbursed"
    assert data["balance"]["total_due"] == 55000
    assert data["balance"]["total_paid"] == 30000
    assert data["balance"]["outstanding"] == 25000
    assert data["balance"]["total_due_estimated"] is False
    assert data["disbursement"]["repayment_amount"] == 55000


def test_get_loan_without_disbursement_estimates_balance(client: TestClient, make_loan):
    loan = make_loan(status="approved", loan_amount=Decimal("20000"), repayment_amount=None)

    data = client.get(f"/v1/loans/{loan.id}").json()

    assert data["balance"]["total_due"] == 22000
    assert data["balance"]["total_due_estimated"] is True
    assert data["disbursement"] is None


def test_get_loan_errors(client: TestClient):
    assert client.get(f"/v1/loans/{UNKNOWN_ID}").status_code == 404
    assert client.get("/v1/loans/not-a-uuid").status_code == 400


def test_list_loan_repayments(client: TestClient, make_loan, add_repayment):
    loan = make_loan()
    add_repayment(loan, checkout_request_id="ws_CO_1")
    add_repayment(loan, checkout_request_id="ws_CO_2")

    response = client.get(f"/v1/loans/{loan.id}/repayments")

    assert response.status_code == 200
    assert {r["checkout_request_id"] for r in response.json()} == {"ws_CO_1", "ws_CO_2"}


def test_approve_pending_loan(client: TestClient, db: Session, make_loan):
    loan = make_loan(status="pending", repayment_amount=None)

    response = client.post(f"/v1/loans/{loan.id}/approve")

    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert len(AuditRepository(db).get_by_entity(loan.id, action="loan_approved")) == 1
    assert sms_types(db, loan.id) == ["approved"]


def test_approve_twice_conflicts(client: TestClient, db: Session, make_loan):
    loan = make_loan(status="pending", repayment_amount=None)

    client.post(f"/v1/loans/{loan.id}/approve")
    response = client.post(f"/v1/loans/{loan.id}/approve")

    assert response.status_code == 409
    assert response.json()["success"] is False
    assert sms_types(db, loan.id) == ["approved"]


def test_reject_requires_reason(client: TestClient, db: Session, make_loan):
    loan = make_loan(status="pending", repayment_amount=None)

    response = client.post(f"/v1/loans/{loan.id}/reject", json={"reason": "  "})

    assert response.status_code == 400
    db.expire_all()
    assert loan.status == "pending"


def test_reject_pending_loan(client: TestClient, db: Session, make_loan):
    loan = make_loan(status="pending", repayment_amount=None)

    response = client.post(f"/v1/loans/{loan.id}/reject", json={"reason": "Incomplete documents"})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "rejected"
    assert data["rejection_reason"] == "Incomplete documents"
    assert sms_types(db, loan.id) == ["rejected"]


def test_disburse_approved_loan(client: TestClient, db: Session, make_loan):
    loan = make_loan(status="approved", repayment_amount=None)
    before = datetime.now(timezone.utc)

    response = client.post(f"/v1/loans/{loan.id}/disburse", json={"transaction_ref": "B2C-001"})

    assert response.status_code == 201
    data = response.json()
    assert data["amount"] == 50000
    assert data["repayment_amount"] == 55000
    assert data["repayment_status"] == "pending"
    assert data["transaction_ref"] == "B2C-001"
    due = datetime.fromisoformat(data["repayment_due_date"].replace("Z", "+00:00"))
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    assert before + timedelta(days=7) - timedelta(minutes=1) <= due <= before + timedelta(days=7, minutes=1)

    db.expire_all()
    assert loan.status == "disbursed"
    assert sms_types(db, loan.id) == ["disbursed"]


def test_disburse_pending_loan_conflicts(client: TestClient, db: Session, make_loan):
    loan = make_loan(status="pending", repayment_amount=None)

    response = client.post(f"/v1/loans/{loan.id}/disburse")

    assert response.status_code == 409
    assert db.query(Disbursement).count() == 0


def test_mark_overdue(client: TestClient, db: Session, make_loan):
    overdue = make_loan(due_in_days=-1)
    current = make_loan(due_in_days=3)

    first = client.post("/v1/disbursements/mark-overdue")
    second = client.post("/v1/disbursements/mark-overdue")

    assert first.json() == {"overdue_count": 1}
    assert second.json() == {"overdue_count": 0}

    db.expire_all()
    statuses = {
        d.application_id: d.repayment_status
        for d in db.query(Disbursement).all()
    }
    assert statuses[overdue.id] == "overdue"
    assert statuses[current.id] == "pending"
    assert db.query(AuditLog).filter(AuditLog.action == "repayments_overdue").count() == 1
