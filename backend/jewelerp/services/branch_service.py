# Overview: Branch records, persisted settings, and the BranchContext passed into every service call.

from __future__ import annotations

from dataclasses import dataclass, replace

from flask import current_app

from ..extensions import db
from ..models import AppSetting, Branch

SETTING_BRANCH_ID = "branch_id"
SETTING_COMPANY_ID = "company_id"
SETTING_BUSINESS_STATE = "business_state"


class BranchError(Exception):
    """Raised when branch operations fail."""
    pass


@dataclass(frozen=True)
class BranchContext:
    """
    Who is acting and where.

    Built once per request (or per scheduler tick) and handed to services
    explicitly; nothing in the service layer reads a global branch id.
    """
    branch_id: int
    company_id: int
    business_state: str | None = None
    user_id: int | None = None

    def for_user(self, user_id: int | None) -> "BranchContext":
        return replace(self, user_id=user_id)


def get_setting(key: str, *, branch_id: int = 0, default: str | None = None) -> str | None:
    row = db.session.query(AppSetting).filter_by(scope_branch_id=branch_id, key=key).first()
    if row is None:
        return default
    return row.value


def set_setting(key: str, value, *, branch_id: int = 0) -> AppSetting:
    if not key:
        raise BranchError("key is required")
    row = db.session.query(AppSetting).filter_by(scope_branch_id=branch_id, key=key).first()
    if row is None:
        row = AppSetting(scope_branch_id=branch_id, key=key)
        db.session.add(row)
    row.value = None if value is None else str(value)
    db.session.commit()
    return row


def create_branch(*, name: str, code: str | None = None, state: str | None = None,
                  gstin: str | None = None, company_id: int = 1) -> Branch:
    if not name or not name.strip():
        raise BranchError("name is required")
    if db.session.query(Branch).filter_by(name=name.strip()).first():
        raise BranchError("Branch name already exists")
    branch = Branch(name=name.strip(), code=code, state=state, gstin=gstin, company_id=company_id)
    db.session.add(branch)
    db.session.commit()
    return branch


def build_branch_context(user_id: int | None = None) -> BranchContext:
    """
    Resolve the branch this install runs as.

    Install-wide settings win over the environment (BRANCH_ID, COMPANY_ID,
    BUSINESS_STATE); a branch row with a state overrides BUSINESS_STATE.
    """
    cfg = current_app.config

    branch_id = int(get_setting(SETTING_BRANCH_ID, default=None) or cfg.get("BRANCH_ID", 1))
    company_id = int(get_setting(SETTING_COMPANY_ID, default=None) or cfg.get("COMPANY_ID", 1))
    business_state = get_setting(SETTING_BUSINESS_STATE, default=None)

    if not business_state:
        branch = db.session.get(Branch, branch_id)
        if branch is not None and branch.state:
            business_state = branch.state
    if not business_state:
        business_state = cfg.get("BUSINESS_STATE")

    return BranchContext(
        branch_id=branch_id,
        company_id=company_id,
        business_state=business_state,
        user_id=user_id,
    )
