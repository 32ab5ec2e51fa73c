"""
Storage access for semester rollover.

RolloverGateway wraps the caller's AsyncSession; every read and write of a preview or an
upgrade goes through it, so one upgrade runs on one session and one transaction. Query
results are turned into the frozen records below right here; the service never indexes
raw rows.
"""

import enum
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, distinct, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.auth.models import User
from app.core.enums import UserRole
from app.core.models import Grade, SchoolClass, Student
from app.core.models.student import STUDENT_NO_UNIQUE_CONSTRAINT

from .grade_names import TerminalGradePredicate


class InsertOutcome(str, enum.Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped"


def is_student_no_conflict(error: IntegrityError) -> bool:
    """True when `error` is a duplicate (class_id, student_no), not some other integrity violation."""
    message = str(error.orig)
    if STUDENT_NO_UNIQUE_CONSTRAINT in message:
        return True
    # SQLite names the columns instead of the constraint
    return "students.class_id, students.student_no" in message


@dataclass(frozen=True)
class GradeRecord:
    id: int
    name: str
    sort_order: int


@dataclass(frozen=True)
class GradeSummary:
    id: int
    name: str
    sort_order: int
    class_count: int
    student_count: int


@dataclass(frozen=True)
class ClassRecord:
    id: int
    grade_id: int
    name: str
    meal_fee: Decimal
    class_teacher_id: Optional[int]


@dataclass(frozen=True)
class ClassTeacherRecord:
    class_id: int
    class_name: str
    grade_name: str
    teacher_id: Optional[int]
    teacher_name: Optional[str]


@dataclass(frozen=True)
class ClassHeadcount:
    grade_name: str
    class_name: str
    student_count: int


@dataclass(frozen=True)
class StudentCopy:
    """Columns carried from a student row into the same student's row in the new class."""

    student_no: str
    name: str
    gender: Optional[str]
    birth_date: Optional[str]
    parent_name: Optional[str]
    parent_phone: Optional[str]
    address: Optional[str]
    is_nutrition_meal: bool
    enrollment_date: Optional[str]
    is_active: bool


_STUDENT_COPY_COLUMNS = (
    Student.student_no,
    Student.name,
    Student.gender,
    Student.birth_date,
    Student.parent_name,
    Student.parent_phone,
    Student.address,
    Student.is_nutrition_meal,
    Student.enrollment_date,
    Student.is_active,
)


class RolloverGateway:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ----- Reads -----

    async def list_grade_summaries(self, semester_id: int) -> List[GradeSummary]:
        """Grades of a semester with distinct class and active-student counts (zero when empty)."""
        stmt = (
            select(
                Grade.id,
                Grade.name,
                Grade.sort_order,
                func.count(distinct(SchoolClass.id)).label("class_count"),
                func.count(distinct(Student.id)).label("student_count"),
            )
            .select_from(Grade)
            .outerjoin(SchoolClass, SchoolClass.grade_id == Grade.id)
            .outerjoin(Student, and_(Student.class_id == SchoolClass.id, Student.is_active.is_(True)))
            .where(Grade.semester_id == semester_id)
            .group_by(Grade.id, Grade.name, Grade.sort_order)
            .order_by(Grade.sort_order, Grade.id)
        )
        result = await self.db.execute(stmt)
        return [
            GradeSummary(
                id=row.id,
                name=row.name,
                sort_order=row.sort_order,
                class_count=int(row.class_count or 0),
                student_count=int(row.student_count or 0),
            )
            for row in result.all()
        ]

    async def list_grades(self, semester_id: int, grade_ids: Optional[Iterable[int]] = None) -> List[GradeRecord]:
        stmt = select(Grade.id, Grade.name, Grade.sort_order).where(Grade.semester_id == semester_id)
        if grade_ids is not None:
            stmt = stmt.where(Grade.id.in_(list(grade_ids)))
        stmt = stmt.order_by(Grade.sort_order, Grade.id)
        result = await self.db.execute(stmt)
        return [GradeRecord(id=row.id, name=row.name, sort_order=row.sort_order) for row in result.all()]

    async def list_terminal_grades(
        self, semester_id: int, is_terminal_grade: TerminalGradePredicate
    ) -> List[GradeRecord]:
        return [g for g in await self.list_grades(semester_id) if is_terminal_grade(g.name)]

    async def list_class_teachers(self, semester_id: int) -> List[ClassTeacherRecord]:
        """Every class under the semester's grades with its homeroom teacher, if any."""
        stmt = (
            select(
                SchoolClass.id,
                SchoolClass.name,
                SchoolClass.class_teacher_id,
                Grade.name.label("grade_name"),
                User.real_name.label("teacher_name"),
            )
            .join(Grade, SchoolClass.grade_id == Grade.id)
            .outerjoin(User, SchoolClass.class_teacher_id == User.id)
            .where(Grade.semester_id == semester_id)
            .order_by(Grade.sort_order, Grade.id, SchoolClass.name)
        )
        result = await self.db.execute(stmt)
        return [
            ClassTeacherRecord(
                class_id=row.id,
                class_name=row.name,
                grade_name=row.grade_name,
                teacher_id=row.class_teacher_id,
                teacher_name=row.teacher_name,
            )
            for row in result.all()
        ]

    async def count_active_students(self, grade_ids: Sequence[int]) -> int:
        if not grade_ids:
            return 0
        stmt = (
            select(func.count(distinct(Student.id)))
            .join(SchoolClass, Student.class_id == SchoolClass.id)
            .where(SchoolClass.grade_id.in_(list(grade_ids)), Student.is_active.is_(True))
        )
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    async def list_class_headcounts(self, grade_ids: Sequence[int]) -> List[ClassHeadcount]:
        """Active students per class for the given grades, ordered by class name."""
        if not grade_ids:
            return []
        stmt = (
            select(
                Grade.name.label("grade_name"),
                SchoolClass.name.label("class_name"),
                func.count(Student.id).label("student_count"),
            )
            .select_from(SchoolClass)
            .join(Grade, SchoolClass.grade_id == Grade.id)
            .outerjoin(Student, and_(Student.class_id == SchoolClass.id, Student.is_active.is_(True)))
            .where(SchoolClass.grade_id.in_(list(grade_ids)))
            .group_by(SchoolClass.id, SchoolClass.name, Grade.name)
            .order_by(SchoolClass.name, SchoolClass.id)
        )
        result = await self.db.execute(stmt)
        return [
            ClassHeadcount(
                grade_name=row.grade_name,
                class_name=row.class_name,
                student_count=int(row.student_count or 0),
            )
            for row in result.all()
        ]

    async def count_conflicting_student_nos(self, source_class_ids: Sequence[int], target_semester_id: int) -> int:
        """Distinct student numbers of the source classes already present in any class of the target semester."""
        if not source_class_ids:
            return 0
        existing = aliased(Student)
        in_target = (
            select(existing.id)
            .join(SchoolClass, existing.class_id == SchoolClass.id)
            .where(
                SchoolClass.semester_id == target_semester_id,
                existing.student_no == Student.student_no,
            )
            .exists()
        )
        stmt = select(func.count(distinct(Student.student_no))).where(
            Student.class_id.in_(list(source_class_ids)),
            in_target,
        )
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    async def find_grade_id(self, semester_id: int, name: str) -> Optional[int]:
        result = await self.db.execute(
            select(Grade.id)
            .where(Grade.semester_id == semester_id, Grade.name == name)
            .order_by(Grade.id)
            .limit(1)
        )
        return result.scalars().first()

    async def list_classes(self, grade_id: int) -> List[ClassRecord]:
        result = await self.db.execute(
            select(
                SchoolClass.id,
                SchoolClass.grade_id,
                SchoolClass.name,
                SchoolClass.meal_fee,
                SchoolClass.class_teacher_id,
            )
            .where(SchoolClass.grade_id == grade_id)
            .order_by(SchoolClass.id)
        )
        return [
            ClassRecord(
                id=row.id,
                grade_id=row.grade_id,
                name=row.name,
                meal_fee=row.meal_fee,
                class_teacher_id=row.class_teacher_id,
            )
            for row in result.all()
        ]

    async def list_class_ids(self, grade_ids: Sequence[int]) -> List[int]:
        if not grade_ids:
            return []
        result = await self.db.execute(
            select(SchoolClass.id).where(SchoolClass.grade_id.in_(list(grade_ids))).order_by(SchoolClass.id)
        )
        return list(result.scalars().all())

    async def find_class_id(self, semester_id: int, grade_id: int, name: str) -> Optional[int]:
        result = await self.db.execute(
            select(SchoolClass.id)
            .where(
                SchoolClass.semester_id == semester_id,
                SchoolClass.grade_id == grade_id,
                SchoolClass.name == name,
            )
            .order_by(SchoolClass.id)
            .limit(1)
        )
        return result.scalars().first()

    async def list_students_to_copy(self, class_id: int) -> List[StudentCopy]:
        result = await self.db.execute(
            select(*_STUDENT_COPY_COLUMNS).where(Student.class_id == class_id).order_by(Student.id)
        )
        return [StudentCopy(**row._asdict()) for row in result.all()]

    # ----- Writes (caller owns commit / rollback) -----

    async def insert_grade(self, semester_id: int, name: str, sort_order: int) -> int:
        grade = Grade(semester_id=semester_id, name=name, sort_order=sort_order)
        self.db.add(grade)
        await self.db.flush()
        return grade.id

    async def insert_class(self, semester_id: int, grade_id: int, name: str, meal_fee: Decimal) -> int:
        school_class = SchoolClass(
            semester_id=semester_id,
            grade_id=grade_id,
            name=name,
            class_teacher_id=None,
            meal_fee=meal_fee,
            student_count=0,
        )
        self.db.add(school_class)
        await self.db.flush()
        return school_class.id

    async def deactivate_students(self, class_ids: Sequence[int]) -> int:
        """Soft-delete every active student of the given classes. Returns how many were deactivated."""
        if not class_ids:
            return 0
        result = await self.db.execute(
            select(Student.id).where(Student.class_id.in_(list(class_ids)), Student.is_active.is_(True))
        )
        student_ids = list(result.scalars().all())
        if not student_ids:
            return 0
        await self.db.execute(
            update(Student)
            .where(Student.id.in_(student_ids))
            .values(is_active=False, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        return len(student_ids)

    async def set_class_teacher(self, class_id: int, teacher_id: Optional[int]) -> None:
        await self.db.execute(
            update(SchoolClass)
            .where(SchoolClass.id == class_id)
            .values(class_teacher_id=teacher_id, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )

    async def clear_class_teachers(self, class_ids: Sequence[int]) -> None:
        if not class_ids:
            return
        await self.db.execute(
            update(SchoolClass)
            .where(SchoolClass.id.in_(list(class_ids)))
            .values(class_teacher_id=None, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )

    async def grant_class_teacher_role(self, user_id: int) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(role=UserRole.CLASS_TEACHER.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )

    async def get_class_teacher_id(self, class_id: int) -> Optional[int]:
        result = await self.db.execute(select(SchoolClass.class_teacher_id).where(SchoolClass.id == class_id))
        return result.scalar_one_or_none()

    async def list_homeroom_class_ids(self, teacher_id: int) -> List[int]:
        result = await self.db.execute(
            select(SchoolClass.id).where(SchoolClass.class_teacher_id == teacher_id).order_by(SchoolClass.id)
        )
        return list(result.scalars().all())

    async def demote_unassigned_class_teachers(self, user_ids: Iterable[int]) -> List[int]:
        """Set role back to teacher for class teachers among `user_ids` who homeroom no class. Returns their ids."""
        ids = sorted(set(user_ids))
        if not ids:
            return []
        homeroom = select(SchoolClass.id).where(SchoolClass.class_teacher_id == User.id).exists()
        result = await self.db.execute(
            select(User.id).where(
                User.id.in_(ids),
                User.role == UserRole.CLASS_TEACHER.value,
                ~homeroom,
            )
        )
        demoted = list(result.scalars().all())
        if demoted:
            await self.db.execute(
                update(User)
                .where(User.id.in_(demoted))
                .values(role=UserRole.TEACHER.value, updated_at=datetime.utcnow())
                .execution_options(synchronize_session="fetch")
            )
        return demoted

    async def insert_student_or_skip(self, class_id: int, student: StudentCopy) -> InsertOutcome:
        """Insert a copy of `student` into `class_id`; SKIPPED when (class_id, student_no) already exists."""
        now = datetime.utcnow()
        values: Dict[str, object] = {**asdict(student), "class_id": class_id, "created_at": now, "updated_at": now}
        dialect = self.db.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = (
                insert_fn(Student)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["class_id", "student_no"])
                .returning(Student.id)
            )
            result = await self.db.execute(stmt)
            return InsertOutcome.INSERTED if result.scalar_one_or_none() is not None else InsertOutcome.SKIPPED

        # No ON CONFLICT support: insert under a savepoint and treat a student_no clash as a skip
        try:
            async with self.db.begin_nested():
                await self.db.execute(insert(Student).values(**values))
        except IntegrityError as e:
            if not is_student_no_conflict(e):
                raise
            return InsertOutcome.SKIPPED
        return InsertOutcome.INSERTED

    async def refresh_student_counts(self, class_ids: Iterable[int]) -> None:
        """Recompute the cached active-student count of the given classes."""
        ids = sorted(set(class_ids))
        if not ids:
            return
        active_count = (
            select(func.count(Student.id))
            .where(Student.class_id == SchoolClass.id, Student.is_active.is_(True))
            .scalar_subquery()
        )
        await self.db.execute(
            update(SchoolClass)
            .where(SchoolClass.id.in_(ids))
            .values(student_count=active_count, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
