"""
Integration tests for the real-time notification socket.
"""

import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool
from starlette.websockets import WebSocketDisconnect

import core.database as database_module
from main import app
from core.database import Base, get_db
from models import Doctor, Notification, Patient, User
from tests.conftest import create_admin
from tests.utils import auth_headers, create_jwt_token


@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.pop(get_db, None)


def socket_url(user: User) -> str:
    return f"/ws/notifications?token={create_jwt_token(user.id, user.role, user.email)}"


class TestNotificationSocket:
    """Test connection handling and live delivery."""

    def test_connected_frame(self, client: TestClient, admin: User):
        with client.websocket_connect(socket_url(admin)) as ws:
            frame = ws.receive_json()

            assert frame["event"] == "connected"
            assert frame["data"]["userId"] == admin.id
            assert client.get("/api/websocket/status").json()["connectedUsers"] == 1

    def test_rejects_bad_token(self, client: TestClient):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications?token=garbage") as ws:
                ws.receive_json()

        assert exc_info.value.code == 1008

    def test_rejects_missing_token(self, client: TestClient):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/notifications") as ws:
                ws.receive_json()

    def test_live_delivery_after_approval(
        self, client: TestClient, patient: Patient, doctor: Doctor
    ):
        appointment_id = client.post(
            "/api/appointments",
            json={"doctor_id": doctor.id, "appointment_date": "2030-01-15", "time": "10:00", "type": "checkup"},
            headers=auth_headers(patient.user),
        ).json()["id"]

        with client.websocket_connect(socket_url(patient.user)) as ws:
            assert ws.receive_json()["event"] == "connected"

            response = client.patch(
                f"/api/doctor/appointments/{appointment_id}/status",
                json={"status": "SCHEDULED"},
                headers=auth_headers(doctor.user),
            )
            assert response.status_code == 200

            approved = ws.receive_json()
            reminder = ws.receive_json()

        assert approved["event"] == "new_notification"
        assert approved["data"]["title"] == "✅ Appointment Approved!"
        assert approved["data"]["isRead"] is False
        assert approved["data"]["link"] == "/appointments"
        assert reminder["data"]["title"] == "⏰ Appointment Reminder"

    def test_broadcast_reaches_connected_users(self, client: TestClient, admin: User, patient: Patient):
        with client.websocket_connect(socket_url(patient.user)) as ws:
            ws.receive_json()

            client.post(
                "/api/notifications/broadcast",
                json={"title": "Maintenance", "message": "Back at noon"},
                headers=auth_headers(admin),
            )
            frame = ws.receive_json()

        assert frame["event"] == "broadcast_notification"
        assert frame["data"]["title"] == "Maintenance"

    def test_binary_frame_is_ignored(self, client: TestClient, admin: User, patient: Patient):
        """A frame without text is skipped and the socket keeps receiving."""
        with client.websocket_connect(socket_url(patient.user)) as ws:
            ws.receive_json()
            ws.send_bytes(b"\x00\x01")
            ws.send_text("not json")

            client.post(
                "/api/notifications/broadcast",
                json={"title": "Still here", "message": "m"},
                headers=auth_headers(admin),
            )
            frame = ws.receive_json()

        assert frame["data"]["title"] == "Still here"

    def test_notification_read_frame(self, client: TestClient, db_session, admin: User):
        notification = Notification(user_id=admin.id, title="Ping", message="m", is_read=False)
        db_session.add(notification)
        db_session.commit()

        with client.websocket_connect(socket_url(admin)) as ws:
            ws.receive_json()
            ws.send_json({"event": "notification_read", "data": {"notificationId": notification.id}})

            unread = None
            for _ in range(50):
                unread = client.get("/api/notifications?unread=true", headers=auth_headers(admin)).json()
                if unread["unread_count"] == 0:
                    break
                time.sleep(0.02)

        assert unread["unread_count"] == 0

    def test_disconnect_unregisters(self, client: TestClient, admin: User):
        with client.websocket_connect(socket_url(admin)) as ws:
            ws.receive_json()

        for _ in range(50):
            if client.get("/api/websocket/status").json()["connectedUsers"] == 0:
                break
            time.sleep(0.02)

        assert client.get("/api/websocket/status").json()["connectedUsers"] == 0


class TestSocketConnectionUsage:
    """Test that open sockets do not pin database connections."""

    def test_idle_socket_leaves_pool_free(self, tmp_path, monkeypatch):
        pooled_engine = create_engine(
            f"sqlite:///{tmp_path / 'pool.db'}",
            poolclass=QueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=2,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(bind=pooled_engine)
        PooledSession = sessionmaker(bind=pooled_engine, autoflush=False, expire_on_commit=False)
        monkeypatch.setattr(database_module, "SessionLocal", PooledSession)

        def pooled_get_db():
            db = PooledSession()
            try:
                yield db
            finally:
                db.close()

        setup = PooledSession()
        try:
            user = create_admin(setup)
            headers = auth_headers(user)
            url = socket_url(user)
        finally:
            setup.close()

        app.dependency_overrides[get_db] = pooled_get_db
        try:
            with TestClient(app) as client:
                with client.websocket_connect(url) as ws:
                    assert ws.receive_json()["event"] == "connected"
                    assert pooled_engine.pool.checkedout() == 0

                    response = client.get("/api/notifications", headers=headers)

                    assert response.status_code == 200
                    assert response.json()["notifications"] == []
        finally:
            app.dependency_overrides.pop(get_db, None)
            pooled_engine.dispose()
