from typing import List, Optional

from pydantic import BaseModel, Field

from app.api.v1.semesters.schemas import SemesterResponse
from app.core.enums import UpgradeMode


class SemesterUpgradeRequest(BaseModel):
    """Copy selected grades (with their classes and students) from source semester into target semester."""
    source_semester_id: int = Field(..., description="Semester to copy from (e.g. ending term)")
    target_semester_id: int = Field(..., description="Semester to copy into (e.g. new term)")
    grade_ids: List[int] = Field(..., description="Source-semester grades to carry over")
    upgrade_mode: UpgradeMode = Field(
        UpgradeMode.YEAR,
        description="year: renumber grades and graduate the top grade; semester: keep grade names",
    )
    preserve_class_teachers: bool = Field(True, description="Move homeroom teachers to the new classes")


class AvailableGrade(BaseModel):
    id: int
    name: str = Field(..., description="Name the grade will have in the target semester")
    original_name: Optional[str] = None
    class_count: int
    student_count: int


class GradePreviewItem(BaseModel):
    old_grade: str
    new_grade: str
    class_count: int
    student_count: int
    will_graduate: bool = Field(False, description="Terminal grade: students graduate, nothing is copied")


class ClassTeacherPreviewItem(BaseModel):
    old_class_id: int
    old_class_name: str
    old_grade_name: str
    old_teacher_id: Optional[int] = None
    old_teacher_name: Optional[str] = None
    will_migrate: bool


class GraduationPreviewItem(BaseModel):
    grade_name: str
    class_name: str
    student_count: int


class UpgradePreview(BaseModel):
    source_semester: SemesterResponse
    target_semester: SemesterResponse
    upgrade_mode: UpgradeMode
    available_grades: List[AvailableGrade]
    preview_data: List[GradePreviewItem]
    total_classes: int
    total_students: int
    class_teacher_preview: List[ClassTeacherPreviewItem]
    graduating_students_count: int = 0
    graduation_preview: List[GraduationPreviewItem] = Field(default_factory=list)
    conflicting_students_count: int = 0
    conflicting_grades_count: Optional[int] = None
    conflicting_grades_names: Optional[List[str]] = None


class UpgradePreviewResponse(BaseModel):
    data: UpgradePreview


class UpgradeCounts(BaseModel):
    grades_created: int = 0
    classes_created: int = 0
    students_created: int = 0
    graduated_students_count: int = 0
    skipped_count: int = 0
    warnings: Optional[List[str]] = None


class UpgradeResult(BaseModel):
    success: bool
    message: Optional[str] = None
    data: Optional[UpgradeCounts] = None
