from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import Semester

from .schemas import SemesterResponse


def _to_response(s: Semester) -> SemesterResponse:
    return SemesterResponse(
        id=s.id,
        name=s.name,
        start_date=s.start_date,
        end_date=s.end_date,
        school_days=s.school_days,
        is_current=s.is_current,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


async def get_semester(db: AsyncSession, semester_id: int) -> Optional[SemesterResponse]:
    """Get one semester by id."""
    s = await db.get(Semester, semester_id)
    return _to_response(s) if s else None
