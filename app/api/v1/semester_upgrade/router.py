from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.operation_logs.service import get_client_ip, log_operation
from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import UpgradeMode
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import SemesterUpgradeRequest, UpgradePreviewResponse, UpgradeResult
from . import service

router = APIRouter(prefix="/api/v1/semesters/upgrade", tags=["semester-upgrade"])


def _describe(payload: SemesterUpgradeRequest, result: UpgradeResult) -> str:
    if not result.success:
        return f"Semester upgrade failed: {result.message}"
    mode_text = "Year upgrade" if payload.upgrade_mode == UpgradeMode.YEAR else "Semester migration"
    data = result.data
    text = (
        f"{mode_text}: semester {payload.source_semester_id} -> {payload.target_semester_id}, "
        f"{len(payload.grade_ids)} grades, {data.classes_created} classes, {data.students_created} students"
    )
    if data.graduated_students_count:
        text += f", {data.graduated_students_count} graduated"
    return text


@router.get(
    "",
    response_model=UpgradePreviewResponse,
    dependencies=[Depends(check_permission("semesters", "upgrade"))],
)
async def get_upgrade_preview(
    source_semester_id: int = Query(..., description="Semester to copy from"),
    target_semester_id: int = Query(..., description="Semester to copy into"),
    upgrade_mode: UpgradeMode = Query(UpgradeMode.YEAR, description="year or semester"),
    db: AsyncSession = Depends(get_db),
) -> UpgradePreviewResponse:
    """Preview grades, classes, homeroom teachers, graduates and conflicts for an upgrade. Admin only."""
    try:
        preview = await service.get_upgrade_preview(db, source_semester_id, target_semester_id, upgrade_mode)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return UpgradePreviewResponse(data=preview)


@router.post(
    "",
    response_model=UpgradeResult,
    response_model_exclude_none=True,
    dependencies=[Depends(check_permission("semesters", "upgrade"))],
)
async def upgrade_semester(
    payload: SemesterUpgradeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UpgradeResult:
    """Run the upgrade in one transaction. 400 with the failure message when nothing was written. Admin only."""
    if not payload.grade_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Select at least one grade")

    result = await service.upgrade_semester(db, payload)
    await log_operation(
        db,
        current_user.id,
        "upgrade",
        "semesters",
        _describe(payload, result),
        ip_address=get_client_ip(request),
    )
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
    return result
