"""Grades per semester (e.g. "1年级", "一年级", "Grade 3"). Name is a display label, not a number."""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.session import Base


class Grade(Base):
    """Grade belongs to exactly one semester. (semester_id, name) is expected to be unique; rollover reuses by name."""

    __tablename__ = "grades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    semester = relationship("Semester", backref="grades")
