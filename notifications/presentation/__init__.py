from fastapi import APIRouter

from .admin import router as admin_router
from .notification import router as notification_router

router = APIRouter(tags=["notifications"])
router.include_router(admin_router)
router.include_router(notification_router)
