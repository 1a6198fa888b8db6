from fastapi import APIRouter
from app.api.v1.endpoints import auth, offers, notifications, verification, vendor, realtime
from app.api.v1.endpoints.admin import admin_router

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(offers.router, prefix="/offers", tags=["Offers"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(verification.router, prefix="/verification", tags=["Verification"])
api_router.include_router(vendor.router, prefix="/vendor", tags=["Vendor"])
api_router.include_router(realtime.router, prefix="/realtime", tags=["Realtime"])

# Admin dashboard
api_router.include_router(admin_router)
