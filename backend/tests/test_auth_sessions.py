from datetime import timedelta

import pytest

from conftest import PASSWORD
from jewelerp.models import SessionToken, SyncQueue, User
from jewelerp.services import auth_service, session_service
from jewelerp.services.auth_service import AuthError, PasswordValidationError
from jewelerp.time_utils import utcnow


class TestPasswordRules:

    @pytest.mark.parametrize("password, message", [
        ("Ab1!", "8 characters"),
        ("password123!", "uppercase"),
        ("PASSWORD123!", "lowercase"),
        ("Password!!", "digit"),
        ("Password123", "special"),
    ])
    def test_weak_passwords(self, password, message):
        with pytest.raises(PasswordValidationError, match=message):
            auth_service.validate_password_strength(password)

    def test_strong_password_hashes(self):
        hashed = auth_service.hash_password("Str0ng!Pass", rounds=4)
        assert hashed.startswith("$2")
        assert auth_service.verify_password("Str0ng!Pass", hashed)
        assert not auth_service.verify_password("wrong", hashed)

    def test_unusable_hash_never_verifies(self):
        assert auth_service.verify_password(PASSWORD, "!") is False


class TestAccounts:

    def test_create_user_queues_sync(self, ctx):
        user = auth_service.create_user(
            ctx, username="priya", email="priya@shop.local", password="Gold#Shop1",
            role="manager", bcrypt_rounds=4,
        )

        assert user.branch_id == 1
        assert user.role == "manager"
        queued = SyncQueue.query.filter_by(table_name="users", record_id=user.id).one()
        assert "password_hash" not in queued.data

    @pytest.mark.parametrize("kwargs, message", [
        ({"username": "admin", "email": "new@shop.local"}, "already exists"),
        ({"username": "new", "email": "admin@shop.local"}, "already exists"),
        ({"username": "new", "email": "new@shop.local", "role": "owner"}, "role"),
        ({"username": "new", "email": "new@shop.local", "branch_id": 42}, "Branch"),
        ({"username": "", "email": "new@shop.local"}, "required"),
    ])
    def test_create_user_rejections(self, ctx, kwargs, message):
        with pytest.raises(AuthError, match=message):
            auth_service.create_user(ctx, password="Gold#Shop1", bcrypt_rounds=4, **kwargs)

    def test_weak_password_rejected_on_create(self, ctx):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user(ctx, username="new", email="new@shop.local", password="short", bcrypt_rounds=4)

    def test_authenticate_by_username_or_email(self, admin_user):
        assert auth_service.authenticate("admin", PASSWORD).id == admin_user.id
        assert auth_service.authenticate("admin@shop.local", PASSWORD).id == admin_user.id
        assert admin_user.last_login_at is not None
        assert auth_service.authenticate("admin", "Wrong123!") is None
        assert auth_service.authenticate("nobody", PASSWORD) is None

    def test_inactive_user_cannot_authenticate(self, ctx, cashier_user):
        auth_service.set_user_active(ctx, cashier_user.id, False)
        assert auth_service.authenticate("cashier", PASSWORD) is None

    def test_change_password(self, admin_user):
        with pytest.raises(AuthError, match="incorrect"):
            auth_service.change_password(admin_user.id, "Wrong123!", "N3w!Password", bcrypt_rounds=4)
        with pytest.raises(PasswordValidationError):
            auth_service.change_password(admin_user.id, PASSWORD, PASSWORD, bcrypt_rounds=4)

        auth_service.change_password(admin_user.id, PASSWORD, "N3w!Password", bcrypt_rounds=4)
        assert auth_service.authenticate("admin", "N3w!Password") is not None
        assert auth_service.authenticate("admin", PASSWORD) is None


class TestSessions:

    def test_token_is_stored_hashed(self, admin_user):
        session, token = session_service.create_session(admin_user.id, user_agent="pytest")

        assert len(token) == 64
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token
        assert session.branch_id == 1

    def test_validate_touches_last_used(self, admin_user, db_session):
        session, token = session_service.create_session(admin_user.id)
        session.last_used_at = utcnow() - timedelta(minutes=30)
        db_session.commit()

        result = session_service.validate_session(token)

        assert result.user.id == admin_user.id
        assert result.branch_id == 1
        assert utcnow() - session.last_used_at < timedelta(minutes=1)

    def test_unknown_token(self, admin_user):
        assert session_service.validate_session("f" * 64) is None

    def test_idle_timeout_revokes(self, admin_user, db_session):
        session, token = session_service.create_session(admin_user.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert session.is_revoked is True
        assert session.revoked_reason == "Idle timeout"

    def test_absolute_expiry(self, admin_user, db_session):
        session, token = session_service.create_session(admin_user.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_user_session_revoked(self, ctx, cashier_user):
        session, token = session_service.create_session(cashier_user.id)
        auth_service.set_user_active(ctx, cashier_user.id, False)

        assert session_service.validate_session(token) is None
        assert session.revoked_reason == "User account deactivated"

        with pytest.raises(ValueError):
            session_service.create_session(cashier_user.id)

    def test_logout_and_revoke_all(self, admin_user):
        _, first = session_service.create_session(admin_user.id)
        session_service.create_session(admin_user.id)
        session_service.create_session(admin_user.id)

        assert session_service.revoke_session(first) is True
        assert session_service.revoke_session(first) is False
        assert session_service.revoke_all_user_sessions(admin_user.id) == 2
        assert SessionToken.query.filter_by(user_id=admin_user.id, is_revoked=False).count() == 0

    def test_missing_user(self, db_session):
        with pytest.raises(ValueError):
            session_service.create_session(99999)
        assert User.query.count() == 0
