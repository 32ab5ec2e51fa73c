from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    CLASS_TEACHER = "class_teacher"


class UpgradeMode(str, Enum):
    """year: promote and renumber grades, graduate the top grade. semester: carry grades forward as-is."""

    YEAR = "year"
    SEMESTER = "semester"
