from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ....infrastructure.db import get_db
from ....infrastructure.models import Category, Course
from ....infrastructure import cache
from ..authz import require_admin
from ..schemas import CategoryCreate, CategoryOut, CategoryUpdate

router = APIRouter(prefix="/api/categories", tags=["categories"])


def _course_count(db: Session, category_id: int) -> int:
    return db.query(func.count(Course.id)).filter(Course.category_id == category_id).scalar() or 0

def _out(row: Category, count: int = 0) -> CategoryOut:
    return CategoryOut(id=row.id, name=row.name, description=row.description, course_count=count)

def _commit_unique(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status.HTTP_409_CONFLICT, "Category name already exists")

@router.get("", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    rows = (db.query(Category, func.count(Course.id))
            .outerjoin(Course, (Course.category_id == Category.id) & Course.is_published.is_(True))
            .group_by(Category.id)
            .order_by(Category.name)
            .all())
    return [_out(row, count) for row, count in rows]

@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    row = Category(name=payload.name.strip(), description=payload.description)
    db.add(row); _commit_unique(db); db.refresh(row)
    return _out(row)

@router.put("/{category_id}", response_model=CategoryOut, dependencies=[Depends(require_admin)])
def update_category(category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)):
    row = db.get(Category, category_id)
    if not row: raise HTTPException(404, "Category not found")
    if payload.name is not None: row.name = payload.name.strip()
    if payload.description is not None: row.description = payload.description
    _commit_unique(db); db.refresh(row)
    cache.invalidate_catalogue()
    return _out(row, _course_count(db, category_id))

@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
def delete_category(category_id: int, db: Session = Depends(get_db)):
    row = db.get(Category, category_id)
    if not row: raise HTTPException(404, "Category not found")
    if _course_count(db, category_id):
        raise HTTPException(400, "Cannot delete a category that still has courses")
    db.delete(row); db.commit()
