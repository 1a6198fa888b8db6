# Authentication module

from app.modules.auth.dependencies import (
    get_current_account,
    get_current_student,
    get_current_vendor,
    get_current_admin,
    require_role,
    get_actor,
)
