import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.models import User
from app.auth.security import create_access_token, hash_password
from app.core.enums import UserRole
from app.core.models import Grade, SchoolClass, Semester, Student
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """One in-memory SQLite database per test, shared by every connection through StaticPool."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class Seeder:
    """Builds semesters, grades, classes, students and users for a test, committing each batch."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._user_seq = 0

    async def semester(self, name: str, start: date, end: date, is_current: bool = False) -> Semester:
        obj = Semester(name=name, start_date=start, end_date=end, school_days=90, is_current=is_current)
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, real_name: str, role: UserRole = UserRole.TEACHER) -> User:
        self._user_seq += 1
        obj = User(
            username=f"user{self._user_seq}",
            password_hash=hash_password("Passw0rd!"),
            real_name=real_name,
            role=role.value,
        )
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def grade(self, semester: Semester, name: str, sort_order: int = 0) -> Grade:
        obj = Grade(semester_id=semester.id, name=name, sort_order=sort_order)
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def school_class(
        self,
        grade: Grade,
        name: str,
        teacher: Optional[User] = None,
        meal_fee: Decimal = Decimal("5.00"),
    ) -> SchoolClass:
        obj = SchoolClass(
            semester_id=grade.semester_id,
            grade_id=grade.id,
            name=name,
            class_teacher_id=teacher.id if teacher else None,
            meal_fee=meal_fee,
        )
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def students(self, school_class: SchoolClass, student_nos: List[str], is_active: bool = True) -> List[Student]:
        rows = [
            Student(
                student_no=no,
                name=f"Student {no}",
                gender="F" if i % 2 else "M",
                class_id=school_class.id,
                parent_phone="13800000000",
                is_nutrition_meal=i % 3 == 0,
                enrollment_date="2024-09-01",
                is_active=is_active,
            )
            for i, no in enumerate(student_nos)
        ]
        self.db.add_all(rows)
        await self.db.commit()
        return rows


@pytest.fixture()
def seed(db_session: AsyncSession) -> Seeder:
    return Seeder(db_session)


@pytest.fixture()
async def cohort(seed: Seeder) -> Dict[str, object]:
    """
    Semester A holds "Grade 1" with two classes of five students; "Class 1" has a homeroom teacher.
    Semester B is empty.
    """
    sem_a = await seed.semester("2024-2025", date(2024, 9, 1), date(2025, 7, 10), is_current=True)
    sem_b = await seed.semester("2025-2026", date(2025, 9, 1), date(2026, 7, 10))
    teacher = await seed.user("Li Hua", UserRole.TEACHER)
    grade_1 = await seed.grade(sem_a, "Grade 1", sort_order=1)
    class_1 = await seed.school_class(grade_1, "Class 1", teacher=teacher)
    class_2 = await seed.school_class(grade_1, "Class 2", meal_fee=Decimal("6.50"))
    await seed.students(class_1, [f"2024{n:03d}" for n in range(1, 6)])
    await seed.students(class_2, [f"2024{n:03d}" for n in range(6, 11)])
    return {
        "source": sem_a,
        "target": sem_b,
        "teacher": teacher,
        "grade": grade_1,
        "class_1": class_1,
        "class_2": class_2,
    }


def _auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(subject={"sub": str(user.id), "user_id": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers() -> Callable[[User], Dict[str, str]]:
    """Bearer header for a seeded user."""
    return _auth_headers
