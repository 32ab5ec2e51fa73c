from datetime import date, datetime

from pydantic import BaseModel


class SemesterResponse(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    school_days: int
    is_current: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
