"""Classes under a grade (e.g. "1班"). Model named SchoolClass to avoid Python 'class' keyword."""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.db.session import Base


class SchoolClass(Base):
    """
    Class belongs to one grade and (redundantly) to that grade's semester.
    class_teacher_id links the homeroom teacher; a teacher homerooms at most one class.
    student_count caches the number of active students.
    """

    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False, index=True)
    grade_id = Column(Integer, ForeignKey("grades.id", ondelete="RESTRICT"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    class_teacher_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    meal_fee = Column(Numeric(10, 2), nullable=False, default=0)  # daily meal fee used for refunds
    student_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    grade = relationship("Grade", backref="classes", foreign_keys=[grade_id])
    class_teacher = relationship("User", foreign_keys=[class_teacher_id])
