from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String

from app.db.session import Base


class Semester(Base):
    """
    A school term. At most one semester is is_current = true (enforced by semester management).
    The rollover engine only reads semesters; grades, classes and students hang off them.
    """

    __tablename__ = "semesters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)  # e.g. "2025-2026 Autumn"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    school_days = Column(Integer, nullable=False, default=0)
    is_current = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
