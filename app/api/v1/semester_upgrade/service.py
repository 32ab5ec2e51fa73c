"""Semester rollover: preview what an upgrade would do, and run it in one transaction.

Year mode promotes grades ("1年级" -> "2年级"), graduates the terminal grade and moves
homeroom teachers along with their classes. Semester mode carries grades forward under
the same names. Target-semester grades and classes are matched by name and reused, so an
upgrade can be re-run; students already present in a target class are skipped with a
warning instead of failing the whole upgrade.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.semesters import service as semester_service
from app.api.v1.semesters.schemas import SemesterResponse
from app.core.config import settings
from app.core.enums import UpgradeMode
from app.core.exceptions import InvalidArgumentError, NotFoundError, ServiceError

from .gateway import GradeRecord, InsertOutcome, RolloverGateway
from .grade_names import TerminalGradePredicate, increment_grade_name, terminal_grade_predicate
from .schemas import (
    AvailableGrade,
    ClassTeacherPreviewItem,
    GradePreviewItem,
    GraduationPreviewItem,
    SemesterUpgradeRequest,
    UpgradeCounts,
    UpgradePreview,
    UpgradeResult,
)

logger = logging.getLogger(__name__)


def default_terminal_grade_predicate() -> TerminalGradePredicate:
    return terminal_grade_predicate(settings.graduating_grade_level)


def target_grade_name(name: str, mode: UpgradeMode) -> str:
    return increment_grade_name(name) if mode == UpgradeMode.YEAR else name


async def _get_semester_pair(
    db: AsyncSession,
    source_semester_id: int,
    target_semester_id: int,
) -> Tuple[SemesterResponse, SemesterResponse]:
    source = await semester_service.get_semester(db, source_semester_id)
    if not source:
        raise NotFoundError("Source semester not found")
    target = await semester_service.get_semester(db, target_semester_id)
    if not target:
        raise NotFoundError("Target semester not found")
    return source, target


async def get_upgrade_preview(
    db: AsyncSession,
    source_semester_id: int,
    target_semester_id: int,
    mode: UpgradeMode = UpgradeMode.YEAR,
    is_terminal_grade: Optional[TerminalGradePredicate] = None,
) -> UpgradePreview:
    """
    Describe what upgrading from source to target semester would do. Read-only.
    Raises NotFoundError when either semester does not exist.
    """
    is_terminal_grade = is_terminal_grade or default_terminal_grade_predicate()
    source, target = await _get_semester_pair(db, source_semester_id, target_semester_id)
    gateway = RolloverGateway(db)

    grades = await gateway.list_grade_summaries(source_semester_id)
    class_teachers = await gateway.list_class_teachers(source_semester_id)

    graduating_students_count = 0
    graduation_preview: List[GraduationPreviewItem] = []
    terminal_ids: Set[int] = set()
    if mode == UpgradeMode.YEAR:
        terminal_ids = {g.id for g in grades if is_terminal_grade(g.name)}
        if terminal_ids:
            graduating_students_count = await gateway.count_active_students(sorted(terminal_ids))
            graduation_preview = [
                GraduationPreviewItem(
                    grade_name=h.grade_name,
                    class_name=h.class_name,
                    student_count=h.student_count,
                )
                for h in await gateway.list_class_headcounts(sorted(terminal_ids))
            ]

    conflicting_students_count = await gateway.count_conflicting_student_nos(
        [c.class_id for c in class_teachers], target_semester_id
    )

    available_grades: List[AvailableGrade] = []
    preview_data: List[GradePreviewItem] = []
    conflicting_grades_names: List[str] = []
    for g in grades:
        graduating = g.id in terminal_ids
        new_name = g.name if graduating else target_grade_name(g.name, mode)
        if mode == UpgradeMode.YEAR and not graduating:
            if await gateway.find_grade_id(target_semester_id, new_name) is not None:
                conflicting_grades_names.append(f"{g.name} → {new_name}")
        available_grades.append(
            AvailableGrade(
                id=g.id,
                name=new_name,
                original_name=g.name,
                class_count=g.class_count,
                student_count=g.student_count,
            )
        )
        preview_data.append(
            GradePreviewItem(
                old_grade=g.name,
                new_grade=new_name,
                class_count=g.class_count,
                student_count=g.student_count,
                will_graduate=graduating,
            )
        )

    return UpgradePreview(
        source_semester=source,
        target_semester=target,
        upgrade_mode=mode,
        available_grades=available_grades,
        preview_data=preview_data,
        total_classes=sum(g.class_count for g in grades),
        total_students=sum(g.student_count for g in grades),
        class_teacher_preview=[
            ClassTeacherPreviewItem(
                old_class_id=c.class_id,
                old_class_name=c.class_name,
                old_grade_name=c.grade_name,
                old_teacher_id=c.teacher_id,
                old_teacher_name=c.teacher_name,
                will_migrate=c.teacher_id is not None,
            )
            for c in class_teachers
        ],
        graduating_students_count=graduating_students_count,
        graduation_preview=graduation_preview,
        conflicting_students_count=conflicting_students_count,
        conflicting_grades_count=len(conflicting_grades_names) or None,
        conflicting_grades_names=conflicting_grades_names or None,
    )


async def _validate_request(db: AsyncSession, request: SemesterUpgradeRequest) -> List[GradeRecord]:
    """Check semesters and grade selection before anything is written. Returns the selected grades."""
    await _get_semester_pair(db, request.source_semester_id, request.target_semester_id)
    if request.source_semester_id == request.target_semester_id:
        raise InvalidArgumentError("Source and target semester must be different")
    requested = set(request.grade_ids)
    if not requested:
        raise InvalidArgumentError("Select at least one grade")
    grades = await RolloverGateway(db).list_grades(request.source_semester_id, requested)
    if len(grades) != len(requested):
        raise InvalidArgumentError("Selected grades do not belong to source semester")
    return grades


async def _run_upgrade(
    gateway: RolloverGateway,
    request: SemesterUpgradeRequest,
    grades: List[GradeRecord],
    is_terminal_grade: TerminalGradePredicate,
) -> UpgradeCounts:
    mode = request.upgrade_mode
    source_id = request.source_semester_id
    target_id = request.target_semester_id
    counts = UpgradeCounts()
    warnings: List[str] = []
    touched_class_ids: Set[int] = set()

    # Graduation: terminal-grade students leave instead of being promoted
    terminal_ids: Set[int] = set()
    if mode == UpgradeMode.YEAR:
        terminal_ids = {g.id for g in await gateway.list_terminal_grades(source_id, is_terminal_grade)}
        graduating_class_ids = await gateway.list_class_ids(sorted(terminal_ids))
        counts.graduated_students_count = await gateway.deactivate_students(graduating_class_ids)
        touched_class_ids.update(graduating_class_ids)

    grade_id_map: Dict[int, int] = {}
    target_grade_names: Dict[int, str] = {}
    for grade in grades:
        if grade.id in terminal_ids:
            continue
        new_name = target_grade_name(grade.name, mode)
        target_grade_names[grade.id] = new_name
        existing_id = await gateway.find_grade_id(target_id, new_name)
        if existing_id is not None:
            grade_id_map[grade.id] = existing_id
        else:
            grade_id_map[grade.id] = await gateway.insert_grade(target_id, new_name, grade.sort_order)
            counts.grades_created += 1

    class_id_map: Dict[int, int] = {}
    teachers_by_old_class: Dict[int, int] = {}
    class_labels: Dict[int, str] = {}
    for old_grade_id, new_grade_id in grade_id_map.items():
        for cls in await gateway.list_classes(old_grade_id):
            existing_id = await gateway.find_class_id(target_id, new_grade_id, cls.name)
            if existing_id is not None:
                class_id_map[cls.id] = existing_id
            else:
                class_id_map[cls.id] = await gateway.insert_class(target_id, new_grade_id, cls.name, cls.meal_fee)
                counts.classes_created += 1
            if cls.class_teacher_id is not None:
                teachers_by_old_class[cls.id] = cls.class_teacher_id
                class_labels[cls.id] = f"{target_grade_names[old_grade_id]}/{cls.name}"

    if request.preserve_class_teachers and teachers_by_old_class:
        # Free the old classes first so a teacher never homerooms two classes at once
        await gateway.clear_class_teachers(sorted(teachers_by_old_class))
        role_review_ids: Set[int] = set(teachers_by_old_class.values())
        for old_class_id, teacher_id in teachers_by_old_class.items():
            new_class_id = class_id_map[old_class_id]
            # A teacher homerooms one class at most; leave the new class for manual assignment
            other_classes = [c for c in await gateway.list_homeroom_class_ids(teacher_id) if c != new_class_id]
            if other_classes:
                warnings.append(f"please manually assign homeroom teacher for {class_labels[old_class_id]}")
                continue
            displaced_id = await gateway.get_class_teacher_id(new_class_id)
            if displaced_id is not None and displaced_id != teacher_id:
                role_review_ids.add(displaced_id)
            await gateway.set_class_teacher(new_class_id, teacher_id)
            await gateway.grant_class_teacher_role(teacher_id)
        demoted = await gateway.demote_unassigned_class_teachers(role_review_ids)
        if demoted:
            logger.info("Class teachers left without a class reset to teacher: %s", demoted)

    for old_class_id, new_class_id in class_id_map.items():
        for student in await gateway.list_students_to_copy(old_class_id):
            outcome = await gateway.insert_student_or_skip(new_class_id, student)
            if outcome is InsertOutcome.INSERTED:
                counts.students_created += 1
            else:
                counts.skipped_count += 1
                warnings.append(f"student_no {student.student_no} already exists, skipped")
        touched_class_ids.add(new_class_id)

    await gateway.refresh_student_counts(touched_class_ids)

    counts.warnings = warnings or None
    return counts


async def upgrade_semester(
    db: AsyncSession,
    request: SemesterUpgradeRequest,
    is_terminal_grade: Optional[TerminalGradePredicate] = None,
) -> UpgradeResult:
    """
    Copy the selected grades, their classes and students from source into target semester.
    All-or-nothing: any error rolls back every write of this call and returns success=False.
    Duplicate student numbers in a target class are skipped and reported in warnings.
    """
    is_terminal_grade = is_terminal_grade or default_terminal_grade_predicate()
    try:
        grades = await _validate_request(db, request)
    except ServiceError as e:
        return UpgradeResult(success=False, message=e.message)

    logger.info(
        "Semester upgrade started: %s -> %s, mode=%s, grades=%s",
        request.source_semester_id,
        request.target_semester_id,
        request.upgrade_mode.value,
        [g.id for g in grades],
    )
    try:
        counts = await _run_upgrade(RolloverGateway(db), request, grades, is_terminal_grade)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception(
            "Semester upgrade %s -> %s failed, rolled back",
            request.source_semester_id,
            request.target_semester_id,
        )
        return UpgradeResult(success=False, message=str(e) or "Upgrade failed, please try again later")

    logger.info(
        "Semester upgrade committed: grades=%d classes=%d students=%d graduated=%d skipped=%d",
        counts.grades_created,
        counts.classes_created,
        counts.students_created,
        counts.graduated_students_count,
        counts.skipped_count,
    )
    message = "Year upgrade completed" if request.upgrade_mode == UpgradeMode.YEAR else "Semester migration completed"
    return UpgradeResult(success=True, message=message, data=counts)
