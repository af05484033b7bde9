from fastapi import APIRouter

from pharmacy.app.api.v1.endpoints.health import router as health_router
from pharmacy.app.api.v1.endpoints.drugs import router as drugs_router
from pharmacy.app.api.v1.endpoints.members import router as members_router
from pharmacy.app.api.v1.endpoints.inventory import router as inventory_router
from pharmacy.app.api.v1.endpoints.sales import router as sales_router
from pharmacy.app.api.v1.endpoints.reports import router as reports_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(drugs_router, tags=["drugs"])
router.include_router(members_router, tags=["members"])
router.include_router(inventory_router, tags=["inventory"])
router.include_router(sales_router, tags=["sales"])
router.include_router(reports_router, tags=["reports"])
