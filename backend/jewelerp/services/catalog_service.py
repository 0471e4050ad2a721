# Overview: Categories, metal types and products, including stock movements and barcode lookup.

from __future__ import annotations

from ..extensions import db
from ..models import Category, MetalType, Product
from ..money import q3, to_decimal
from ..pagination import paginate
from ..validation import (
    ConflictError,
    PRODUCT_POLICY,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from . import sync_service
from .branch_service import BranchContext
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_PRODUCT, next_document_number

PRODUCT_MUTABLE_FIELDS = PRODUCT_POLICY.writable_fields - {"product_code"}


class CatalogError(Exception):
    """Raised when catalog operations fail."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CatalogNotFoundError(CatalogError):
    pass


def create_category(ctx: BranchContext, *, name: str, description: str | None = None,
                    hsn_code: str | None = None, tax_percentage=None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if db.session.query(Category).filter_by(name=name).first():
        raise ConflictError("Category already exists")

    def _op() -> Category:
        category = Category(
            branch_id=ctx.branch_id,
            name=name,
            description=description,
            hsn_code=hsn_code or "71131900",
            tax_percentage=to_decimal(tax_percentage) if tax_percentage is not None else 3,
        )
        db.session.add(category)
        sync_service.queue_record(ctx, category, "insert")
        db.session.commit()
        return category

    return run_with_retry(_op)


def list_categories(*, include_inactive: bool = False) -> list[Category]:
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name.asc()).all()


def create_metal_type(ctx: BranchContext, *, name: str, metal_code: str, purity_percentage) -> MetalType:
    name = (name or "").strip()
    metal_code = (metal_code or "").strip().upper()
    if not name or not metal_code:
        raise ValidationError("name and metal_code are required")
    purity = to_decimal(purity_percentage)
    if not (0 < purity <= 100):
        raise ValidationError("purity_percentage must be between 0 and 100")
    if db.session.query(MetalType).filter_by(metal_code=metal_code).first():
        raise ConflictError("Metal code already exists")

    def _op() -> MetalType:
        metal_type = MetalType(
            branch_id=ctx.branch_id,
            name=name,
            metal_code=metal_code,
            purity_percentage=purity,
        )
        db.session.add(metal_type)
        sync_service.queue_record(ctx, metal_type, "insert")
        db.session.commit()
        return metal_type

    return run_with_retry(_op)


def list_metal_types() -> list[MetalType]:
    return db.session.query(MetalType).filter(MetalType.is_active.is_(True)).order_by(MetalType.name.asc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise CatalogNotFoundError("Product not found")
    return product


def find_by_barcode(barcode: str) -> Product | None:
    if not barcode:
        return None
    return db.session.query(Product).filter(
        db.or_(Product.barcode == barcode, Product.product_code == barcode)
    ).first()


def create_product(ctx: BranchContext, payload: dict) -> Product:
    """
    Create a product from a request payload.

    net_weight defaults to gross - stone; fine_weight is net x purity / 100,
    with purity taken from the metal type when not given.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    if db.session.get(Category, patch["category_id"]) is None:
        raise ValidationError("category_id not found")
    metal_type = db.session.get(MetalType, patch["metal_type_id"])
    if metal_type is None:
        raise ValidationError("metal_type_id not found")

    code = patch.get("product_code")
    if code and db.session.query(Product).filter_by(product_code=code).first():
        raise ConflictError("Product code already exists")
    barcode = patch.get("barcode")
    if barcode and db.session.query(Product).filter_by(barcode=barcode).first():
        raise ConflictError("Barcode already exists")

    def _op() -> Product:
        product = Product(branch_id=ctx.branch_id, created_by=ctx.user_id, **patch)
        if not product.product_code:
            product.product_code = next_document_number(
                branch_id=ctx.branch_id, document_type="product", prefix=PREFIX_PRODUCT
            )
        if product.stone_weight is None:
            product.stone_weight = 0
        if product.purity is None:
            product.purity = metal_type.purity_percentage
        product.calculate_weights()
        if product.current_stock is None:
            product.current_stock = 1
        product.status = product.status or ("in_stock" if product.current_stock > 0 else "sold")

        db.session.add(product)
        sync_service.queue_record(ctx, product, "insert")
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(ctx: BranchContext, product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if "product_code" in patch:
        raise ValidationError("product_code cannot be changed")

    def _op() -> Product:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise CatalogNotFoundError("Product not found")

        barcode = patch.get("barcode")
        if barcode and barcode != product.barcode:
            if db.session.query(Product).filter(Product.barcode == barcode, Product.id != product.id).first():
                raise ConflictError("Barcode already exists")

        for k, v in patch.items():
            if k in PRODUCT_MUTABLE_FIELDS:
                setattr(product, k, v)

        if to_decimal(product.stone_weight) > to_decimal(product.gross_weight):
            raise ValidationError("stone_weight cannot exceed gross_weight")
        if {"gross_weight", "stone_weight"} & patch.keys() and "net_weight" not in patch:
            product.net_weight = q3(to_decimal(product.gross_weight) - to_decimal(product.stone_weight))
        product.calculate_weights()

        sync_service.queue_record(ctx, product, "update")
        db.session.commit()
        return product

    return run_with_retry(_op)


def apply_stock_delta(product: Product, delta: int) -> None:
    """
    Move stock inside the caller's transaction. Never below zero; status
    flips to sold at zero and back to in_stock when restocked.
    """
    new_stock = (product.current_stock or 0) + delta
    if new_stock < 0:
        raise CatalogError(
            f"Insufficient stock for product {product.product_name}. "
            f"Available: {product.current_stock}, Required: {-delta}",
            details={"product_id": product.id, "available": product.current_stock, "requested": -delta},
        )
    product.current_stock = new_stock
    if new_stock == 0:
        product.status = "sold"
    elif product.status == "sold":
        product.status = "in_stock"


def adjust_stock(ctx: BranchContext, product_id: int, delta: int) -> Product:
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    def _op() -> Product:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise CatalogNotFoundError("Product not found")
        apply_stock_delta(product, delta)
        sync_service.queue_record(ctx, product, "update")
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.current_stock <= Product.min_stock_level)
        .order_by(Product.current_stock.asc(), Product.product_name.asc())
        .all()
    )


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    metal_type_id: int | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Product).filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.product_name.ilike(like),
            Product.product_code.ilike(like),
            Product.barcode.ilike(like),
            Product.huid.ilike(like),
        ))
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if metal_type_id:
        query = query.filter(Product.metal_type_id == metal_type_id)
    if status:
        query = query.filter(Product.status == status)

    query = query.order_by(Product.product_name.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda p: p.to_dict())
