# API endpoints
from . import auth, offers, notifications, verification, vendor, realtime

__all__ = ["auth", "offers", "notifications", "verification", "vendor", "realtime"]
