from fastapi import APIRouter

from attendance_server.routes import attendance, auth, classes, export, qrcodes, sections

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth")
api_router.include_router(attendance.router, prefix="/attendance")
api_router.include_router(qrcodes.router, prefix="/qrcodes")
api_router.include_router(classes.router, prefix="/class")
api_router.include_router(sections.router, prefix="/sections")
api_router.include_router(export.router, prefix="/export")

__all__ = ["api_router"]
