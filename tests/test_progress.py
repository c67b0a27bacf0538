from datetime import timedelta

from conftest import auth_headers, make_course
from learnpro.application.use_cases.update_lesson_progress import UpdateLessonProgress, recompute_course_progress
from learnpro.infrastructure.models import Enrollment, Exam, ExamAttempt, Notification, Subscriber, utcnow


def _enroll(client, user, course):
    return client.post(f"/api/courses/{course.id}/enroll", headers=auth_headers(user))

def _complete(client, user, lesson, completed=True, watch=0):
    return client.put(f"/api/progress/lessons/{lesson.id}",
                      json={"completed": completed, "watch_time_seconds": watch},
                      headers=auth_headers(user))


def test_enroll_and_complete_scenario(client, db, student):
    """Enroll -> 0, then 33, 67, 100 with completed_at set at the end"""
    course = make_course(db, lessons=3)
    lessons = list(course.lessons)

    response = _enroll(client, student, course)
    assert response.status_code == 200
    assert response.json()["enrollment"]["progress_percentage"] == 0
    assert response.json()["already_enrolled"] is False

    seen = []
    for lesson in lessons:
        body = _complete(client, student, lesson).json()
        seen.append(body["course_progress_percentage"])
    assert seen == [33, 67, 100]
    assert body["course_completed"] is True

    db.expire_all()
    enrollment = db.query(Enrollment).filter_by(user_id=student.id, course_id=course.id).one()
    assert enrollment.progress_percentage == 100
    assert enrollment.completed_at is not None
    titles = {n.title for n in db.query(Notification).filter_by(user_id=student.id)}
    assert {"Enrollment confirmed", "Course completed!"} <= titles

def test_completed_at_is_set_once(client, db, student):
    course = make_course(db, lessons=2)
    lessons = list(course.lessons)
    _enroll(client, student, course)
    for lesson in lessons:
        _complete(client, student, lesson)
    db.expire_all()
    first = db.query(Enrollment).filter_by(user_id=student.id).one().completed_at

    _complete(client, student, lessons[0], completed=False)
    body = _complete(client, student, lessons[0]).json()
    assert body["course_progress_percentage"] == 100

    db.expire_all()
    enrollment = db.query(Enrollment).filter_by(user_id=student.id).one()
    assert enrollment.completed_at == first
    completions = db.query(Notification).filter_by(user_id=student.id, title="Course completed!").count()
    assert completions == 1

def test_repeat_completion_does_not_change_lesson_timestamp(client, db, student):
    course = make_course(db, lessons=2)
    lesson = course.lessons[0]
    _enroll(client, student, course)
    first = _complete(client, student, lesson, watch=120).json()["progress"]
    again = _complete(client, student, lesson, watch=30).json()["progress"]
    assert again["completed_at"] == first["completed_at"]
    assert again["watch_time_seconds"] == 120

def test_enroll_twice_returns_existing(client, db, student):
    course = make_course(db)
    first = _enroll(client, student, course).json()
    second = _enroll(client, student, course).json()
    assert second["already_enrolled"] is True
    assert second["enrollment"]["id"] == first["enrollment"]["id"]
    assert db.query(Enrollment).count() == 1

def test_enroll_missing_course(client, student):
    response = client.post("/api/courses/999/enroll", headers=auth_headers(student))
    assert response.status_code == 404

def test_enroll_unpublished_course(client, db, student):
    course = make_course(db, is_published=False)
    response = _enroll(client, student, course)
    assert response.status_code == 400
    assert response.json() == {"error": "Course is not available for enrollment"}

def test_premium_course_requires_subscription(client, db, student):
    course = make_course(db, subscription_tier="premium")
    response = _enroll(client, student, course)
    assert response.status_code == 403
    assert response.json() == {"error": "Active subscription required for this course"}

def test_basic_subscriber_rejected_from_premium(client, db, student):
    course = make_course(db, subscription_tier="premium")
    db.add(Subscriber(user_id=student.id, stripe_customer_id="cus_1", subscribed=True,
                      subscription_tier="basic", subscription_end=utcnow() + timedelta(days=30)))
    db.commit()
    assert _enroll(client, student, course).status_code == 403

def test_premium_subscriber_enrolls(client, db, student):
    course = make_course(db, subscription_tier="premium")
    db.add(Subscriber(user_id=student.id, stripe_customer_id="cus_1", subscribed=True,
                      subscription_tier="premium", subscription_end=utcnow() + timedelta(days=30)))
    db.commit()
    assert _enroll(client, student, course).status_code == 200

def test_expired_subscription_counts_as_free(client, db, student):
    course = make_course(db, subscription_tier="basic")
    db.add(Subscriber(user_id=student.id, stripe_customer_id="cus_1", subscribed=True,
                      subscription_tier="premium", subscription_end=utcnow() - timedelta(days=1)))
    db.commit()
    assert _enroll(client, student, course).status_code == 403

def test_progress_requires_enrollment(client, db, student):
    course = make_course(db)
    response = _complete(client, student, course.lessons[0])
    assert response.status_code == 403
    assert response.json() == {"error": "You are not enrolled in this course"}

def test_progress_unknown_lesson(client, student):
    assert client.put("/api/progress/lessons/999", json={"completed": True},
                      headers=auth_headers(student)).status_code == 404

def test_exam_required_blocks_auto_completion(client, db, student):
    course = make_course(db, lessons=1, exam_required_for_completion=True)
    _enroll(client, student, course)
    body = _complete(client, student, course.lessons[0]).json()
    assert body["course_progress_percentage"] == 100
    assert body["course_completed"] is False

    response = client.post(f"/api/courses/{course.id}/complete", headers=auth_headers(student))
    assert response.status_code == 400

    exam = Exam(course_id=course.id, title="Final")
    db.add(exam); db.commit()
    db.add(ExamAttempt(exam_id=exam.id, user_id=student.id, score=1, max_score=1, percentage=100, passed=True))
    db.commit()
    response = client.post(f"/api/courses/{course.id}/complete", headers=auth_headers(student))
    assert response.status_code == 200
    assert response.json()["completed_at"] is not None

def test_complete_course_requires_all_lessons(client, db, student):
    course = make_course(db, lessons=2)
    _enroll(client, student, course)
    _complete(client, student, course.lessons[0])
    response = client.post(f"/api/courses/{course.id}/complete", headers=auth_headers(student))
    assert response.status_code == 400

def test_complete_course_is_idempotent(client, db, student):
    course = make_course(db, lessons=1)
    _enroll(client, student, course)
    _complete(client, student, course.lessons[0])
    first = client.post(f"/api/courses/{course.id}/complete", headers=auth_headers(student)).json()
    second = client.post(f"/api/courses/{course.id}/complete", headers=auth_headers(student)).json()
    assert first["completed_at"] == second["completed_at"]

def test_my_progress_and_course_progress(client, db, student):
    course = make_course(db, lessons=4)
    _enroll(client, student, course)
    _complete(client, student, course.lessons[0])

    mine = client.get("/api/progress/my", headers=auth_headers(student)).json()
    assert mine[0]["course_title"] == course.title
    assert mine[0]["progress_percentage"] == 25

    rows = client.get(f"/api/courses/{course.id}/progress", headers=auth_headers(student)).json()
    assert len(rows) == 1
    assert rows[0]["is_completed"] is True

def test_course_without_lessons_stays_at_zero(db, student):
    course = make_course(db, lessons=0)
    db.add(Enrollment(user_id=student.id, course_id=course.id)); db.commit()
    assert recompute_course_progress(db, student.id, course.id) == 0

def test_use_case_reports_completion(db, student):
    course = make_course(db, lessons=1)
    db.add(Enrollment(user_id=student.id, course_id=course.id, progress_percentage=0)); db.commit()
    progress, update = UpdateLessonProgress(db).execute(student.id, course.lessons[0].id, True)
    assert progress.is_completed
    assert update.progress_percentage == 100
    assert update.completed_now is True
