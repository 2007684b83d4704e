"""
Integration tests for the HTTP API: appointments, billing and notifications.
"""

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from main import app
from core.database import get_db
from models import Doctor, Notification, Patient, Service, User
from tests.conftest import create_patient
from tests.utils import auth_headers


@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.pop(get_db, None)


def book(client: TestClient, patient: Patient, doctor: Doctor, time: str = "10:00", day: str = "2030-01-15"):
    return client.post(
        "/api/appointments",
        json={"doctor_id": doctor.id, "appointment_date": day, "time": time, "type": "checkup"},
        headers=auth_headers(patient.user),
    )


class TestMisc:
    def test_root_and_health(self, client: TestClient):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").json()["status"] == "running"

    def test_websocket_status(self, client: TestClient):
        body = client.get("/api/websocket/status").json()
        assert body["status"] == "ok"
        assert body["connectedUsers"] == 0
        assert "timestamp" in body


class TestAppointmentEndpoints:
    """Test booking and status updates over HTTP."""

    def test_booking_notifies_doctor_and_patient(
        self, client: TestClient, db_session: Session, patient: Patient, doctor: Doctor
    ):
        response = book(client, patient, doctor)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["doctor_name"] == "Smith"
        assert body["patient_name"] == "Jane Doe"

        doctor_inbox = client.get("/api/notifications", headers=auth_headers(doctor.user)).json()
        assert [n["title"] for n in doctor_inbox["notifications"]] == ["🩺 New Appointment Request"]
        assert doctor_inbox["unread_count"] == 1
        patient_inbox = client.get("/api/notifications", headers=auth_headers(patient.user)).json()
        assert [n["title"] for n in patient_inbox["notifications"]] == ["📅 Appointment Request Submitted"]

    def test_double_booking_is_a_conflict(
        self, client: TestClient, db_session: Session, patient: Patient, doctor: Doctor
    ):
        assert book(client, patient, doctor).status_code == 201
        other = create_patient(db_session, "John", "Roe")

        response = book(client, other, doctor)

        assert response.status_code == 409
        assert response.json()["type"] == "slot_conflict"

    def test_malformed_time(self, client: TestClient, patient: Patient, doctor: Doctor):
        response = book(client, patient, doctor, time="7pm")

        assert response.status_code == 400
        assert response.json()["type"] == "invalid_input"

    def test_requires_authentication(self, client: TestClient, doctor: Doctor):
        response = client.post(
            "/api/appointments",
            json={"doctor_id": doctor.id, "appointment_date": "2030-01-15", "time": "10:00", "type": "checkup"},
        )

        assert response.status_code == 401

    def test_doctor_cannot_book(self, client: TestClient, doctor: Doctor):
        response = client.post(
            "/api/appointments",
            json={"doctor_id": doctor.id, "appointment_date": "2030-01-15", "time": "10:00", "type": "checkup"},
            headers=auth_headers(doctor.user),
        )

        assert response.status_code == 403

    def test_patient_cancel_then_cancel_again(
        self, client: TestClient, patient: Patient, doctor: Doctor
    ):
        appointment_id = book(client, patient, doctor).json()["id"]
        url = f"/api/patient/appointments/{appointment_id}/status"

        first = client.patch(url, json={"status": "CANCELLED", "reason": "Travel"}, headers=auth_headers(patient.user))
        assert first.status_code == 200
        assert first.json()["status"] == "CANCELLED"
        assert first.json()["reason"] == "Travel"

        second = client.patch(url, json={"status": "CANCELLED"}, headers=auth_headers(patient.user))
        assert second.status_code == 409
        assert second.json()["type"] == "invalid_transition"

        doctor_inbox = client.get("/api/notifications", headers=auth_headers(doctor.user)).json()
        assert doctor_inbox["notifications"][0]["title"] == "🚫 Appointment Cancelled by Patient"

    def test_patient_cannot_use_doctor_endpoint(self, client: TestClient, patient: Patient, doctor: Doctor):
        appointment_id = book(client, patient, doctor).json()["id"]

        response = client.patch(
            f"/api/doctor/appointments/{appointment_id}/status",
            json={"status": "SCHEDULED"},
            headers=auth_headers(patient.user),
        )

        assert response.status_code == 403

    def test_doctor_approves(self, client: TestClient, patient: Patient, doctor: Doctor):
        appointment_id = book(client, patient, doctor).json()["id"]

        response = client.patch(
            f"/api/doctor/appointments/{appointment_id}/status",
            json={"status": "SCHEDULED"},
            headers=auth_headers(doctor.user),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "SCHEDULED"
        titles = [
            n["title"]
            for n in client.get("/api/notifications", headers=auth_headers(patient.user)).json()["notifications"]
        ]
        assert "✅ Appointment Approved!" in titles
        assert "⏰ Appointment Reminder" in titles

    def test_invalid_status_value(self, client: TestClient, patient: Patient, doctor: Doctor):
        appointment_id = book(client, patient, doctor).json()["id"]

        response = client.patch(
            f"/api/doctor/appointments/{appointment_id}/status",
            json={"status": "ARCHIVED"},
            headers=auth_headers(doctor.user),
        )

        assert response.status_code == 400
        assert response.json()["type"] == "invalid_status"

    def test_unknown_appointment(self, client: TestClient, doctor: Doctor):
        response = client.patch(
            "/api/doctor/appointments/999/status",
            json={"status": "SCHEDULED"},
            headers=auth_headers(doctor.user),
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Appointment not found", "type": "not_found"}

    def test_listing_is_role_scoped(
        self, client: TestClient, db_session: Session, patient: Patient, doctor: Doctor, admin: User
    ):
        other = create_patient(db_session, "John", "Roe")
        book(client, patient, doctor, time="09:00")
        book(client, other, doctor, time="10:00")

        mine = client.get("/api/appointments", headers=auth_headers(patient.user)).json()["appointments"]
        everything = client.get("/api/appointments", headers=auth_headers(admin)).json()["appointments"]

        assert len(mine) == 1
        assert len(everything) == 2
        assert client.get(f"/api/appointments/{everything[0]['id']}", headers=auth_headers(doctor.user)).status_code == 200


class TestBillingEndpoints:
    """Test the bill line and final bill endpoints."""

    @pytest.fixture
    def appointment_id(self, client: TestClient, patient: Patient, doctor: Doctor) -> int:
        return book(client, patient, doctor).json()["id"]

    def test_full_billing_flow(
        self, client: TestClient, db_session: Session, patient: Patient, doctor: Doctor,
        consultation: Service, appointment_id: int
    ):
        headers = auth_headers(doctor.user)

        services = client.get("/api/services", headers=headers).json()["services"]
        assert [s["service_name"] for s in services] == ["Consultation"]

        added = client.post(
            f"/api/appointments/{appointment_id}/bills",
            json={"service_id": consultation.id, "quantity": 2},
            headers=headers,
        )
        assert added.status_code == 201
        bill_id = added.json()["id"]
        assert Decimal(added.json()["total_cost"]) == Decimal("200")

        edited = client.patch(
            f"/api/appointments/{appointment_id}/bills/{bill_id}",
            json={"quantity": 3},
            headers=headers,
        )
        assert edited.status_code == 200
        assert Decimal(edited.json()["total_cost"]) == Decimal("300")

        final = client.post(
            f"/api/appointments/{appointment_id}/final-bill",
            json={"discount": "10"},
            headers=headers,
        )
        assert final.status_code == 200
        summary = final.json()
        assert Decimal(summary["total_amount"]) == Decimal("300")
        assert Decimal(summary["discount_amount"]) == Decimal("30")
        assert Decimal(summary["payable"]) == Decimal("270")
        assert summary["finalized"] is True

        invoice = client.get(f"/api/appointments/{appointment_id}/bills", headers=auth_headers(patient.user)).json()
        assert len(invoice["bills"]) == 1
        assert invoice["bills"][0]["quantity"] == 3
        assert Decimal(invoice["summary"]["payable"]) == Decimal("270")

        patient_titles = [
            n["title"]
            for n in client.get("/api/notifications", headers=auth_headers(patient.user)).json()["notifications"]
        ]
        assert "New Bill Generated" in patient_titles

    def test_edit_final_bill_and_delete_line(
        self, client: TestClient, doctor: Doctor, consultation: Service, appointment_id: int
    ):
        headers = auth_headers(doctor.user)
        bill_id = client.post(
            f"/api/appointments/{appointment_id}/bills",
            json={"service_id": consultation.id, "quantity": 1},
            headers=headers,
        ).json()["id"]
        client.post(f"/api/appointments/{appointment_id}/final-bill", json={"discount": "0"}, headers=headers)

        edited = client.patch(f"/api/appointments/{appointment_id}/final-bill", json={"discount": "25"}, headers=headers)
        assert Decimal(edited.json()["payable"]) == Decimal("75")

        deleted = client.delete(f"/api/appointments/{appointment_id}/bills/{bill_id}", headers=headers)
        assert deleted.status_code == 204

        invoice = client.get(f"/api/appointments/{appointment_id}/bills", headers=headers).json()
        assert invoice["bills"] == []
        assert Decimal(invoice["summary"]["total_amount"]) == Decimal("0")

    def test_empty_invoice(self, client: TestClient, doctor: Doctor, appointment_id: int):
        invoice = client.get(f"/api/appointments/{appointment_id}/bills", headers=auth_headers(doctor.user)).json()

        assert invoice == {"appointment_id": appointment_id, "bills": [], "summary": None}

    def test_finalize_without_lines(self, client: TestClient, doctor: Doctor, appointment_id: int):
        response = client.post(
            f"/api/appointments/{appointment_id}/final-bill",
            json={"discount": "10"},
            headers=auth_headers(doctor.user),
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "No bills to generate final bill"

    def test_patient_cannot_add_lines(
        self, client: TestClient, patient: Patient, consultation: Service, appointment_id: int
    ):
        response = client.post(
            f"/api/appointments/{appointment_id}/bills",
            json={"service_id": consultation.id, "quantity": 1},
            headers=auth_headers(patient.user),
        )

        assert response.status_code == 403

    def test_bad_quantity(self, client: TestClient, doctor: Doctor, consultation: Service, appointment_id: int):
        response = client.post(
            f"/api/appointments/{appointment_id}/bills",
            json={"service_id": consultation.id, "quantity": 0},
            headers=auth_headers(doctor.user),
        )

        assert response.status_code == 400
        assert response.json()["type"] == "invalid_input"


class TestNotificationEndpoints:
    """Test listing and read marking."""

    def test_unread_filter_and_mark_read(
        self, client: TestClient, db_session: Session, admin: User
    ):
        older = Notification(user_id=admin.id, title="Older", message="m", is_read=False)
        newer = Notification(user_id=admin.id, title="Newer", message="m", is_read=False, link="/x")
        db_session.add_all([older, newer])
        db_session.commit()
        headers = auth_headers(admin)

        marked = client.patch(f"/api/notifications/{older.id}/read", headers=headers)
        assert marked.status_code == 200
        assert marked.json()["isRead"] is True
        assert "link" not in marked.json()

        again = client.patch(f"/api/notifications/{older.id}/read", headers=headers)
        assert again.status_code == 200

        unread = client.get("/api/notifications?unread=true", headers=headers).json()
        assert [n["title"] for n in unread["notifications"]] == ["Newer"]
        assert unread["notifications"][0]["link"] == "/x"

    def test_cannot_mark_someone_elses_notification(
        self, client: TestClient, db_session: Session, admin: User, patient: Patient
    ):
        notification = Notification(user_id=admin.id, title="Private", message="m", is_read=False)
        db_session.add(notification)
        db_session.commit()

        response = client.patch(f"/api/notifications/{notification.id}/read", headers=auth_headers(patient.user))

        assert response.status_code == 404

    def test_broadcast_requires_admin(self, client: TestClient, admin: User, patient: Patient):
        denied = client.post(
            "/api/notifications/broadcast",
            json={"title": "Hi", "message": "All"},
            headers=auth_headers(patient.user),
        )
        assert denied.status_code == 403

        sent = client.post(
            "/api/notifications/broadcast",
            json={"title": "Hi", "message": "All"},
            headers=auth_headers(admin),
        )
        assert sent.status_code == 200
        assert sent.json()["title"] == "Hi"
