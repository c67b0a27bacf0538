from datetime import timedelta
from unittest.mock import MagicMock

from conftest import auth_headers
from learnpro.application.errors import UpstreamError
from learnpro.infrastructure.mailer import get_mailer
from learnpro.infrastructure.models import Notification, utcnow
from learnpro.main import app


def _seed(db, user):
    now = utcnow()
    db.add_all([
        Notification(user_id=user.id, title="Welcome", message="Hi", is_read=True, created_at=now - timedelta(hours=3)),
        Notification(user_id=user.id, title="New lesson", message="Go", created_at=now - timedelta(hours=2)),
        Notification(user_id=user.id, title="Old promo", message="Gone", created_at=now - timedelta(hours=1),
                     expires_at=now - timedelta(minutes=5)),
        Notification(user_id=user.id, title="Deadline", message="Soon", created_at=now,
                     expires_at=now + timedelta(days=1)),
    ])
    db.commit()


def test_list_excludes_expired(client, db, student):
    _seed(db, student)
    response = client.get("/api/notifications", headers=auth_headers(student))
    assert response.status_code == 200
    data = response.json()
    assert [n["title"] for n in data["notifications"]] == ["Deadline", "New lesson", "Welcome"]
    assert data["unread_count"] == 2

def test_list_unread_only(client, db, student):
    _seed(db, student)
    data = client.get("/api/notifications?include_read=false&limit=1", headers=auth_headers(student)).json()
    assert [n["title"] for n in data["notifications"]] == ["Deadline"]
    assert data["unread_count"] == 2

def test_mark_read_and_read_all(client, db, student):
    _seed(db, student)
    headers = auth_headers(student)
    target = db.query(Notification).filter_by(title="New lesson").one()

    response = client.put(f"/api/notifications/{target.id}", json={"is_read": True}, headers=headers)
    assert response.json()["is_read"] is True

    response = client.post("/api/notifications/read-all", headers=headers)
    assert response.json() == {"updated": 2}
    assert client.get("/api/notifications", headers=headers).json()["unread_count"] == 0

def test_cannot_touch_other_users_notification(client, db, student, admin):
    _seed(db, admin)
    target = db.query(Notification).first()
    response = client.put(f"/api/notifications/{target.id}", json={"is_read": True}, headers=auth_headers(student))
    assert response.status_code == 404

def test_admin_sends_notification_with_email(client, db, student, admin):
    mailer = MagicMock()
    app.dependency_overrides[get_mailer] = lambda: mailer
    response = client.post(
        "/api/notifications/send",
        json={"user_id": student.id, "title": "Hello", "message": "Body", "action_url": "/dashboard",
              "send_email": True},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    assert response.json()["title"] == "Hello"
    mailer.send_notification.assert_called_once_with(
        "student@example.com", "Test Student", "Hello", "Body", action_url="/dashboard"
    )

def test_send_survives_email_failure(client, db, student, admin):
    mailer = MagicMock()
    mailer.send_notification.side_effect = UpstreamError("Email provider timed out")
    app.dependency_overrides[get_mailer] = lambda: mailer
    response = client.post(
        "/api/notifications/send",
        json={"user_id": student.id, "title": "Hello", "message": "Body", "send_email": True},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    assert db.query(Notification).filter_by(user_id=student.id).count() == 1

def test_send_requires_admin(client, student):
    response = client.post("/api/notifications/send", json={"user_id": student.id, "title": "x", "message": "y"},
                           headers=auth_headers(student))
    assert response.status_code == 403
