from app.core.models.semester import Semester
from app.core.models.grade import Grade
from app.core.models.class_model import SchoolClass
from app.core.models.student import Student
from app.core.models.operation_log import OperationLog

__all__ = [
    "Grade",
    "OperationLog",
    "SchoolClass",
    "Semester",
    "Student",
]
