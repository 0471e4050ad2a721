# Overview: Flask API routes for login, logout, password changes and staff user management.

# backend/jewelerp/routes/auth.py
"""
Authentication API routes

- Login returns a bearer token; only its SHA-256 hash is stored
- Logout revokes the token
- Admins create and deactivate staff users
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN
from ..responses import fail, ok, server_error
from ..services import auth_service, session_service
from ..services.auth_service import AuthError, PasswordValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with username (or email) and password.

    The token must be sent as `Authorization: Bearer <token>` afterwards.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return fail("username and password required", 400)

        user = auth_service.authenticate(username, password)
        if not user:
            return fail("Invalid credentials", 401)

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return ok({
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        }, "Login successful")

    except Exception:
        current_app.logger.exception("Login failed")
        return server_error()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token)
    return ok(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok({"user": g.current_user.to_dict(), "branch_id": g.branch_context.branch_id})


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    try:
        data = request.get_json(silent=True) or {}
        old_password = data.get("old_password")
        new_password = data.get("new_password")
        if not all([old_password, new_password]):
            return fail("old_password and new_password required", 400)

        auth_service.change_password(
            g.current_user.id,
            old_password,
            new_password,
            bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12),
        )
        # Every other device has to log in again
        session_service.revoke_all_user_sessions(g.current_user.id, reason="Password changed")
        return ok(message="Password changed; please log in again")

    except PasswordValidationError as e:
        return fail(str(e), 400)
    except AuthError as e:
        return fail(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to change password")
        return server_error()


@auth_bp.get("/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    users = db.session.query(User).order_by(User.username.asc()).all()
    return ok({"users": [u.to_dict() for u in users]})


@auth_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            g.branch_context,
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password") or "",
            role=data.get("role") or "cashier",
            full_name=data.get("full_name"),
            branch_id=data.get("branch_id"),
            bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12),
        )
        return ok({"user": user.to_dict()}, "User created", 201)

    except PasswordValidationError as e:
        return fail(str(e), 400)
    except AuthError as e:
        return fail(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return server_error()


@auth_bp.post("/users/<int:user_id>/active")
@require_auth
@require_role(ROLE_ADMIN)
def set_user_active_route(user_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if "is_active" not in data:
            return fail("is_active required", 400)
        if user_id == g.current_user.id and not data["is_active"]:
            return fail("You cannot deactivate your own account", 400)

        user = auth_service.set_user_active(g.branch_context, user_id, bool(data["is_active"]))
        if not user.is_active:
            session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
        return ok({"user": user.to_dict()}, "User updated")

    except AuthError as e:
        return fail(str(e), 404)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return server_error()
