# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, request

from .responses import fail
from .services import session_service
from .services.branch_service import build_branch_context


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "branch_context")


def require_auth(f):
    """
    Require a valid bearer token and establish the branch context.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.session_context: the SessionContext
    - g.branch_context: BranchContext carrying the acting user's id

    Returns 401 when the header is missing, the token is unknown, expired,
    idle too long or revoked, or the user is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return fail("Authentication required", 401)

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return fail("Invalid or expired token", 401)

        g.current_user = context.user
        g.session_context = context
        g.branch_context = build_branch_context(user_id=context.user.id)

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Allow only users whose role is one of roles. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return fail("Authentication required", 401)

            if g.current_user.role not in roles:
                return fail(
                    "Permission denied",
                    403,
                    details={"required_roles": list(roles), "role": g.current_user.role},
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator
