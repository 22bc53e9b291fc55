"""API v1 router."""
from fastapi import APIRouter

from inward.api.v1.auth import router as auth_router
from inward.api.v1.vehicles import router as vehicles_router
from inward.api.v1.reports import router as reports_router
from inward.api.v1.settings import router as settings_router
from inward.api.v1.notifications import router as notifications_router


router = APIRouter(prefix="/v1")

router.include_router(auth_router, prefix="/auth", tags=["Authentication"])
router.include_router(vehicles_router, prefix="/vehicles", tags=["Vehicles"])
router.include_router(reports_router, prefix="/reports", tags=["Reports"])
router.include_router(settings_router, prefix="/settings", tags=["Settings"])
router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
