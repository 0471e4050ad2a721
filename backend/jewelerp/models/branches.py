from __future__ import annotations

from ..extensions import db
from jewelerp.time_utils import to_utc_z


class Branch(db.Model):
    """
    A shop location. Every business row carries the branch_id it was created
    under, and the sync engine uses it to avoid pulling back its own writes.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, nullable=False, default=1)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    # Place of supply for GST (intra vs inter state)
    state = db.Column(db.String(64), nullable=True)
    gstin = db.Column(db.String(15), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "code": self.code,
            "state": self.state,
            "gstin": self.gstin,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class AppSetting(db.Model):
    """
    Persisted key/value settings for an install (branch_id, company_id,
    business_state, ...). Values here override the environment.
    """
    __tablename__ = "app_settings"
    __table_args__ = (
        db.UniqueConstraint("scope_branch_id", "key", name="uq_app_settings_branch_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # 0 means install-wide
    scope_branch_id = db.Column(db.Integer, nullable=False, default=0)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope_branch_id": self.scope_branch_id,
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
