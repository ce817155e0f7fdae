"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from edunotify.api.v1.endpoints import (
    courses,
    notifications,
    results,
    students,
)

api_router = APIRouter()

# Students
api_router.include_router(
    students.router,
    prefix="/students",
    tags=["Students"],
)

# Course catalog
api_router.include_router(
    courses.router,
    prefix="/courses",
    tags=["Courses"],
)

# Results (entry and publishing)
api_router.include_router(
    results.router,
    prefix="/results",
    tags=["Results"],
)

# Notifications
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"],
)
