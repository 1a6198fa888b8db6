"""
Admin API endpoints for the CampusPerks admin dashboard.
All endpoints require an admin account.
"""
from fastapi import APIRouter

from app.api.v1.endpoints.admin import accounts, dashboard, messages, offers, realtime

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

admin_router.include_router(dashboard.router, prefix="/dashboard", tags=["Admin Dashboard"])
admin_router.include_router(accounts.router, prefix="/accounts", tags=["Admin Accounts"])
admin_router.include_router(messages.router, tags=["Admin Messages"])
admin_router.include_router(offers.router, prefix="/offers", tags=["Admin Offers"])
admin_router.include_router(realtime.router, prefix="/realtime", tags=["Admin Realtime"])
