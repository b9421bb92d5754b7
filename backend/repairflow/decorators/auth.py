import logging
from functools import wraps
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from repairflow.errors import PermissionDenied
from repairflow.services.policy import current_permissions

logger = logging.getLogger(__name__)


def require_permissions(*codes: str):
    """Guard a view with global (branch and status independent) permission codes from the JWT."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            missing = [c for c in codes if c not in current_permissions()]
            if missing:
                logger.info("global permission denied admin_id=%s missing=%s", get_jwt_identity(), missing)
                raise PermissionDenied('Missing permission', required=list(codes), missing=missing)
            return fn(*args, **kwargs)
        return wrapper
    return outer
