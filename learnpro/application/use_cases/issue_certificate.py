"""Certificate issuance.

A learner holds at most one certificate per course. Issuing again for the
same (user, course) returns the existing certificate, whichever path
(course completion or passed exam attempt) created it.
"""

from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...domain.certificates import generate_certificate_number
from ...infrastructure.metrics import certificates_issued_total
from ...infrastructure.models import Certificate, Enrollment, ExamAttempt, utcnow
from ...infrastructure.repositories import NotificationRepository
from ..errors import LearnProError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

MAX_NUMBER_ATTEMPTS = 5


class IssueCertificate:
    def __init__(self, db: Session):
        self.db = db

    def find(self, user_id: int, course_id: int) -> Certificate | None:
        return (self.db.query(Certificate)
                .filter(Certificate.user_id == user_id, Certificate.course_id == course_id)
                .first())

    def _new_number(self) -> str:
        for _ in range(MAX_NUMBER_ATTEMPTS):
            number = generate_certificate_number()
            taken = (self.db.query(Certificate.id)
                     .filter(Certificate.certificate_number == number)
                     .first())
            if taken is None:
                return number
        raise LearnProError("Could not allocate a unique certificate number")

    def _create(self, user_id: int, course_id: int, course_title: str,
                exam_attempt_id: int | None = None, score: int | None = None,
                now: datetime | None = None) -> tuple[Certificate, bool]:
        number = self._new_number()
        certificate = Certificate(
            user_id=user_id,
            course_id=course_id,
            exam_attempt_id=exam_attempt_id,
            certificate_number=number,
            score=score,
            issued_at=now or utcnow(),
        )
        self.db.add(certificate)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            existing = self.find(user_id, course_id)
            if existing is None:
                raise
            return existing, False

        NotificationRepository(self.db).add(
            user_id,
            title="Certificate issued!",
            message=f'Your certificate for "{course_title}" is ready',
            type="success",
            action_url=f"/certificate/{number}",
            extra={"certificate_id": certificate.id, "certificate_number": number, "course_id": course_id},
        )
        self.db.commit()
        self.db.refresh(certificate)
        certificates_issued_total.inc()
        logger.info("certificate_issued", user_id=user_id, course_id=course_id,
                    certificate_number=number, exam_attempt_id=exam_attempt_id)
        return certificate, True

    def from_course(self, user_id: int, course_id: int, now: datetime | None = None) -> tuple[Certificate, bool]:
        enrollment = (self.db.query(Enrollment)
                      .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
                      .first())
        if enrollment is None:
            raise NotFoundError("Course enrollment", course_id)
        if enrollment.completed_at is None:
            raise ValidationError("Course must be completed to generate certificate")

        existing = self.find(user_id, course_id)
        if existing is not None:
            return existing, False
        return self._create(user_id, course_id, enrollment.course.title, now=now)

    def from_exam_attempt(self, user_id: int, attempt_id: int, now: datetime | None = None) -> tuple[Certificate, bool]:
        attempt = (self.db.query(ExamAttempt)
                   .filter(ExamAttempt.id == attempt_id, ExamAttempt.user_id == user_id)
                   .first())
        if attempt is None:
            raise NotFoundError("Exam attempt", attempt_id)
        if not attempt.passed:
            raise ValidationError("Certificate can only be generated for passed exams")

        course = attempt.exam.course
        existing = self.find(user_id, course.id)
        if existing is not None:
            return existing, False
        return self._create(user_id, course.id, course.title, exam_attempt_id=attempt.id,
                            score=attempt.score, now=now)

    def regenerate(self, user_id: int, course_id: int, now: datetime | None = None) -> Certificate:
        """Reissue an existing certificate under a fresh number."""
        certificate = self.find(user_id, course_id)
        if certificate is None:
            raise NotFoundError("Certificate", course_id)
        old_number = certificate.certificate_number
        certificate.certificate_number = self._new_number()
        certificate.issued_at = now or utcnow()
        self.db.commit()
        self.db.refresh(certificate)
        logger.info("certificate_regenerated", user_id=user_id, course_id=course_id,
                    old_number=old_number, certificate_number=certificate.certificate_number)
        return certificate

    def verify(self, certificate_number: str) -> Certificate | None:
        return (self.db.query(Certificate)
                .filter(Certificate.certificate_number == certificate_number.strip().upper())
                .first())
