import pytest

from conftest import auth_headers, make_course
from learnpro.infrastructure.models import Enrollment, Exam, ExamQuestion, utcnow


@pytest.fixture
def exam(db, instructor):
    course = make_course(db, lessons=1, instructor_id=instructor.id, has_final_exam=True)
    exam = Exam(course_id=course.id, title="Final", passing_score=60, max_attempts=2)
    exam.questions = [
        ExamQuestion(question="Capital of France?", options=["Paris", "Rome"], correct_answer="Paris", order_index=0),
        ExamQuestion(question="Python is typed dynamically", question_type="true_false",
                     correct_answer=True, order_index=1),
    ]
    db.add(exam); db.commit(); db.refresh(exam)
    return exam


def _enroll(db, user, exam, **fields):
    db.add(Enrollment(user_id=user.id, course_id=exam.course_id, **fields)); db.commit()


def _answers(exam, first, second):
    q1, q2 = exam.questions
    return {"answers": {str(q1.id): first, str(q2.id): second}}


def test_student_sees_exam_without_answers(client, db, student, exam):
    _enroll(db, student, exam)
    response = client.get(f"/api/exams/{exam.id}", headers=auth_headers(student))
    assert response.status_code == 200
    assert all(q["correct_answer"] is None for q in response.json()["questions"])

def test_owner_sees_answers(client, instructor, exam):
    response = client.get(f"/api/exams/{exam.id}", headers=auth_headers(instructor))
    assert response.json()["questions"][0]["correct_answer"] == "Paris"

def test_exam_requires_enrollment(client, student, exam):
    assert client.get(f"/api/exams/{exam.id}", headers=auth_headers(student)).status_code == 403
    response = client.post(f"/api/exams/{exam.id}/attempts", json=_answers(exam, "Paris", True),
                           headers=auth_headers(student))
    assert response.status_code == 403

def test_failed_attempt(client, db, student, exam):
    _enroll(db, student, exam)
    response = client.post(f"/api/exams/{exam.id}/attempts", json=_answers(exam, "Rome", False),
                           headers=auth_headers(student))
    assert response.status_code == 201
    data = response.json()
    assert data["attempt"]["passed"] is False
    assert data["attempt"]["percentage"] == 0
    assert data["certificate_number"] is None

def test_passed_attempt_issues_certificate(client, db, student, exam):
    _enroll(db, student, exam, progress_percentage=100)
    response = client.post(f"/api/exams/{exam.id}/attempts", json=_answers(exam, "paris", "true"),
                           headers=auth_headers(student))
    data = response.json()
    assert data["attempt"]["passed"] is True
    assert data["attempt"]["percentage"] == 100
    assert data["certificate_number"].startswith("CERT-")

    db.expire_all()
    enrollment = db.query(Enrollment).filter_by(user_id=student.id).one()
    assert enrollment.completed_at is not None

def test_max_attempts(client, db, student, exam):
    _enroll(db, student, exam)
    headers = auth_headers(student)
    for _ in range(2):
        assert client.post(f"/api/exams/{exam.id}/attempts", json=_answers(exam, "Rome", False),
                           headers=headers).status_code == 201
    response = client.post(f"/api/exams/{exam.id}/attempts", json=_answers(exam, "Paris", True), headers=headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Maximum number of attempts reached"}

    attempts = client.get(f"/api/exams/{exam.id}/attempts", headers=headers).json()
    assert len(attempts) == 2

def test_unknown_exam(client, student):
    assert client.get("/api/exams/999", headers=auth_headers(student)).status_code == 404
