from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.session import Base

STUDENT_NO_UNIQUE_CONSTRAINT = "uq_student_class_student_no"


class Student(Base):
    """
    Student row per class. student_no is unique within a class only, so the same student
    appears once per semester after a rollover. Soft delete (graduation, leaving) via is_active.
    """

    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("class_id", "student_no", name=STUDENT_NO_UNIQUE_CONSTRAINT),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_no = Column(String(50), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    gender = Column(String(10), nullable=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False)
    birth_date = Column(String(20), nullable=True)
    parent_name = Column(String(100), nullable=True)
    parent_phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    is_nutrition_meal = Column(Boolean, nullable=False, default=False)
    enrollment_date = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass", backref="students", foreign_keys=[class_id])
