# Overview: Daily metal rates: bulk updates, latest rate per metal type, and history.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import MetalRate, MetalType
from ..money import to_decimal
from ..time_utils import utcnow
from . import sync_service
from .branch_service import BranchContext
from .concurrency import run_with_retry


class MetalRateError(Exception):
    """Raised when metal rate operations fail."""
    pass


def update_metal_rates(ctx: BranchContext, rates: dict, source: str = "manual") -> list[MetalRate]:
    """
    Record a new rate for each metal type in {metal_type_id: rate_per_gram}.
    All rows are written in one transaction.
    """
    if not rates:
        raise MetalRateError("At least one rate is required")

    parsed: dict[int, object] = {}
    for raw_id, raw_rate in rates.items():
        try:
            metal_type_id = int(raw_id)
        except (TypeError, ValueError):
            raise MetalRateError(f"Invalid metal_type_id: {raw_id}")
        rate = to_decimal(raw_rate)
        if rate <= 0:
            raise MetalRateError(f"Rate for metal type {metal_type_id} must be > 0")
        if db.session.get(MetalType, metal_type_id) is None:
            raise MetalRateError(f"Metal type {metal_type_id} not found")
        parsed[metal_type_id] = rate

    def _op() -> list[MetalRate]:
        now = utcnow()
        created = []
        for metal_type_id, rate in parsed.items():
            row = MetalRate(
                branch_id=ctx.branch_id,
                metal_type_id=metal_type_id,
                rate_per_gram=rate,
                rate_date=now,
                source=source,
                created_by=ctx.user_id,
            )
            db.session.add(row)
            sync_service.queue_record(ctx, row, "insert")
            created.append(row)
        db.session.commit()
        return created

    return run_with_retry(_op)


def get_latest_rates() -> list[MetalRate]:
    """Most recent rate for every metal type that has one."""
    latest = (
        db.session.query(MetalRate.metal_type_id, func.max(MetalRate.id).label("max_id"))
        .group_by(MetalRate.metal_type_id)
        .subquery()
    )
    return (
        db.session.query(MetalRate)
        .join(latest, MetalRate.id == latest.c.max_id)
        .order_by(MetalRate.metal_type_id.asc())
        .all()
    )


def get_latest_rate(metal_type_id: int) -> MetalRate | None:
    return (
        db.session.query(MetalRate)
        .filter(MetalRate.metal_type_id == metal_type_id)
        .order_by(MetalRate.rate_date.desc(), MetalRate.id.desc())
        .first()
    )


def get_historical_rates(start: datetime, end: datetime, metal_type_id: int | None = None) -> list[MetalRate]:
    if start and end and start > end:
        raise MetalRateError("start must be before end")
    query = db.session.query(MetalRate).filter(MetalRate.rate_date >= start, MetalRate.rate_date <= end)
    if metal_type_id:
        query = query.filter(MetalRate.metal_type_id == metal_type_id)
    return query.order_by(MetalRate.rate_date.asc(), MetalRate.id.asc()).all()
