from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.orm import Session

from ....application.use_cases.issue_certificate import IssueCertificate
from ....domain.progress import as_utc
from ....infrastructure.db import get_db
from ....infrastructure.models import Certificate, UserORM
from ....infrastructure.templating import render
from ..authz import get_current_user
from ..schemas import (
    CertificateGenerateReq, CertificateOut, CertificateRegenerateReq, CertificateResp, CertificateVerifyResp,
)

router = APIRouter(prefix="/api/certificates", tags=["certificates"])


@router.post("/generate", response_model=CertificateResp)
def generate(payload: CertificateGenerateReq,
             user: UserORM = Depends(get_current_user),
             db: Session = Depends(get_db)):
    uc = IssueCertificate(db)
    if payload.exam_attempt_id is not None:
        certificate, created = uc.from_exam_attempt(user.id, payload.exam_attempt_id)
    else:
        certificate, created = uc.from_course(user.id, payload.course_id)
    body = CertificateResp(certificate=CertificateOut.model_validate(certificate), already_exists=not created)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content=body.model_dump(mode="json"),
    )

@router.post("/regenerate", response_model=CertificateOut)
def regenerate(payload: CertificateRegenerateReq,
               user: UserORM = Depends(get_current_user),
               db: Session = Depends(get_db)):
    return IssueCertificate(db).regenerate(user.id, payload.course_id)

@router.get("", response_model=list[CertificateOut])
def my_certificates(user: UserORM = Depends(get_current_user), db: Session = Depends(get_db)):
    return (db.query(Certificate)
            .filter(Certificate.user_id == user.id)
            .order_by(Certificate.issued_at.desc(), Certificate.id.desc())
            .all())

@router.get("/verify/{certificate_number}", response_model=CertificateVerifyResp)
def verify(certificate_number: str, db: Session = Depends(get_db)):
    certificate = IssueCertificate(db).verify(certificate_number)
    if certificate is None:
        return CertificateVerifyResp(valid=False, certificate_number=certificate_number.strip().upper())
    return CertificateVerifyResp(
        valid=True,
        certificate_number=certificate.certificate_number,
        student_name=certificate.user.full_name or certificate.user.email,
        course_title=certificate.course.title,
        issued_at=certificate.issued_at,
    )

@router.get("/{certificate_id}/html", response_class=HTMLResponse)
def certificate_html(certificate_id: int,
                     user: UserORM = Depends(get_current_user),
                     db: Session = Depends(get_db)):
    certificate = db.get(Certificate, certificate_id)
    if certificate is None or (certificate.user_id != user.id and user.role != "admin"):
        raise HTTPException(404, "Certificate not found")
    course = certificate.course
    html = render(
        "certificate.html",
        certificate_number=certificate.certificate_number,
        student_name=certificate.user.full_name or certificate.user.email,
        course_title=course.title,
        score=certificate.score,
        instructor_name=course.instructor.full_name if course.instructor else None,
        issue_date=as_utc(certificate.issued_at).strftime("%B %d, %Y"),
    )
    return HTMLResponse(html)
