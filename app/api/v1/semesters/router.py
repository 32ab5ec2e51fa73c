from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission
from app.db.session import get_db

from .schemas import SemesterResponse
from . import service

router = APIRouter(prefix="/api/v1/semesters", tags=["semesters"])


@router.get(
    "/{semester_id}",
    response_model=SemesterResponse,
    dependencies=[Depends(check_permission("semesters", "read"))],
)
async def get_semester(
    semester_id: int,
    db: AsyncSession = Depends(get_db),
) -> SemesterResponse:
    s = await service.get_semester(db, semester_id)
    if not s:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Semester not found")
    return s
