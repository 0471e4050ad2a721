from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from jewelerp.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from jewelerp.models.catalog import MAKING_CHARGE_TYPES, PRODUCT_STATUSES
from jewelerp.models.purchasing import VENDOR_TYPES


# Largest amount a Numeric(12, 2) column can hold
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate product code)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_column_value(col, value: Any):
    """
    Convert a JSON value into the Python type the column stores.

    Shared by request validation and by the sync pull, which receives every
    remote value as JSON.
    """
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            if value.is_integer():
                return int(value)
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Amounts, weights, percentages
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            return d
        raise ValidationError(f"{col.key} must be a date")

    if isinstance(coltype, JSON):
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable and col.default is None:
                raise ValidationError(f"{k} cannot be null")
            if col.nullable:
                patch[k] = None
            continue

        val = coerce_column_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if isinstance(val, Decimal) and abs(val) > MAX_AMOUNT:
            raise ValidationError(f"{k} is out of range")

        patch[k] = val

    return patch


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_code", "barcode", "huid", "product_name", "description",
        "category_id", "metal_type_id", "gross_weight", "stone_weight", "net_weight",
        "purity", "wastage_percentage", "making_charge_type", "making_charge",
        "stone_amount", "unit_price", "current_stock", "min_stock_level", "status",
        "is_active",
    },
    required_on_create={"product_name", "category_id", "metal_type_id", "gross_weight"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "first_name", "last_name", "mobile", "email", "address", "city", "state",
        "pincode", "gstin", "pan_number", "aadhar_number", "customer_type", "is_active",
    },
    required_on_create={"first_name", "mobile"},
)

KARIGAR_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "mobile", "email", "address", "city", "specialization",
        "payment_type", "payment_rate", "notes", "is_active",
    },
    required_on_create={"name", "mobile"},
)


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("gross_weight", "stone_weight", "net_weight", "making_charge", "stone_amount", "unit_price"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")

    gross = patch.get("gross_weight")
    stone = patch.get("stone_weight")
    if gross is not None and stone is not None and stone > gross:
        raise ValidationError("stone_weight cannot exceed gross_weight")

    for field in ("purity", "wastage_percentage"):
        if patch.get(field) is not None and not (0 <= patch[field] <= 100):
            raise ValidationError(f"{field} must be between 0 and 100")

    if "making_charge_type" in patch and patch["making_charge_type"] not in MAKING_CHARGE_TYPES:
        raise ValidationError(f"making_charge_type must be one of {', '.join(MAKING_CHARGE_TYPES)}")
    if "status" in patch and patch["status"] not in PRODUCT_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(PRODUCT_STATUSES)}")
    if patch.get("current_stock") is not None and patch["current_stock"] < 0:
        raise ValidationError("current_stock must be >= 0")


def enforce_rules_customer(patch: dict) -> None:
    mobile = patch.get("mobile")
    if mobile is not None and (not mobile.isdigit() or len(mobile) != 10):
        raise ValidationError("mobile must be a 10 digit number")
    pan = patch.get("pan_number")
    if pan and len(pan) != 10:
        raise ValidationError("pan_number must be 10 characters")
    if patch.get("customer_type") and patch["customer_type"] not in ("retail", "wholesale", "vip"):
        raise ValidationError("customer_type must be one of retail, wholesale, vip")


VENDOR_POLICY = ModelValidationPolicy(
    writable_fields={
        "vendor_name", "contact_person", "phone", "email", "gstin", "address",
        "city", "state", "pincode", "vendor_type", "credit_limit", "payment_terms",
        "is_active",
    },
    required_on_create={"vendor_name", "phone"},
)


def enforce_rules_vendor(patch: dict) -> None:
    phone = patch.get("phone")
    if phone is not None and (not phone.isdigit() or not 10 <= len(phone) <= 12):
        raise ValidationError("phone must be 10 to 12 digits")
    gstin = patch.get("gstin")
    if gstin and len(gstin) != 15:
        raise ValidationError("gstin must be 15 characters")
    if patch.get("vendor_type") and patch["vendor_type"] not in VENDOR_TYPES:
        raise ValidationError(f"vendor_type must be one of {', '.join(VENDOR_TYPES)}")
    if patch.get("credit_limit") is not None and patch["credit_limit"] < 0:
        raise ValidationError("credit_limit must be >= 0")
