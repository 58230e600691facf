# hms_core/api/router.py
from fastapi import APIRouter
from hms_core.api import (
    routes_admissions,
    routes_beds,
    routes_billing,
    routes_views,
)

api_router = APIRouter()

api_router.include_router(routes_admissions.router)
api_router.include_router(routes_beds.router)
api_router.include_router(routes_billing.router)
api_router.include_router(routes_views.router)
