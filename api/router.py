from fastapi import APIRouter

from api.v1.admin_cancellations import router as admin_cancellations_router
from api.v1.admin_refunds import router as admin_refunds_router
from api.v1.cancellations import router as cancellations_router

router = APIRouter()

# Customer features
router.include_router(cancellations_router, prefix="/v1")

# Admin features
router.include_router(admin_cancellations_router, prefix="/v1")
router.include_router(admin_refunds_router, prefix="/v1")
