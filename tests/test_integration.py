import re

from conftest import auth_headers


def test_full_learning_flow(client, instructor):
    """Register, enroll, finish every lesson, then get and verify a certificate"""
    author = auth_headers(instructor)
    course = client.post("/api/courses", json={"title": "Intro to Git", "is_published": True}, headers=author).json()
    lesson_ids = [
        client.post(f"/api/courses/{course['id']}/lessons",
                    json={"title": f"Step {i}", "content": "...", "order_index": i}, headers=author).json()["id"]
        for i in range(3)
    ]

    assert client.post("/api/auth/register",
                       json={"email": "learner@example.com", "password": "password123",
                             "full_name": "Grace Learner"}).status_code == 201
    token = client.post("/api/auth/login",
                        json={"email": "learner@example.com", "password": "password123"}).json()["access_token"]
    learner = {"Authorization": f"Bearer {token}"}

    catalogue = client.get("/api/courses").json()
    assert [c["title"] for c in catalogue] == ["Intro to Git"]

    enrollment = client.post(f"/api/courses/{course['id']}/enroll", headers=learner).json()["enrollment"]
    assert enrollment["progress_percentage"] == 0
    assert enrollment["completed_at"] is None

    progress = [
        client.put(f"/api/progress/lessons/{lesson_id}", json={"completed": True}, headers=learner).json()
        for lesson_id in lesson_ids
    ]
    assert [p["course_progress_percentage"] for p in progress] == [33, 67, 100]
    assert progress[-1]["completed_at"] is not None

    cert = client.post("/api/certificates/generate", json={"course_id": course["id"]}, headers=learner).json()
    number = cert["certificate"]["certificate_number"]
    assert re.match(r"^CERT-[0-9A-Z]+-[0-9A-Z]{6}$", number)

    again = client.post("/api/certificates/generate", json={"course_id": course["id"]}, headers=learner).json()
    assert again["certificate"]["certificate_number"] == number

    verified = client.get(f"/api/certificates/verify/{number}").json()
    assert verified["valid"] is True
    assert verified["student_name"] == "Grace Learner"

    dashboard = client.get("/api/dashboard", headers=learner).json()
    assert dashboard["summary"]["completed_courses"] == 1
    assert dashboard["summary"]["total_certificates"] == 1

    notifications = client.get("/api/notifications", headers=learner).json()
    titles = [n["title"] for n in notifications["notifications"]]
    assert {"Enrollment confirmed", "Course completed!", "Certificate issued!"} <= set(titles)
