import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.semester_upgrade.router import router as semester_upgrade_router
from app.api.v1.semesters.router import router as semesters_router
from app.core.config import settings


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="School Semester Rollover")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers (upgrade before semesters so /semesters/upgrade is not read as a semester id)
    app.include_router(semester_upgrade_router)
    app.include_router(semesters_router)

    return app


app = create_app()
