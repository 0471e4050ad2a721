# Overview: Flask API routes for categories, metal types, products and stock adjustments.

from decimal import InvalidOperation

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..responses import fail, ok, server_error
from ..services import catalog_service
from ..services.catalog_service import CatalogError, CatalogNotFoundError
from ..validation import ConflictError, ValidationError


products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/categories")
@require_auth
def list_categories_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    categories = catalog_service.list_categories(include_inactive=include_inactive)
    return ok({"categories": [c.to_dict() for c in categories]})


@products_bp.post("/categories")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_category_route():
    try:
        data = request.get_json(silent=True) or {}
        category = catalog_service.create_category(
            g.branch_context,
            name=data.get("name"),
            description=data.get("description"),
            hsn_code=data.get("hsn_code"),
            tax_percentage=data.get("tax_percentage"),
        )
        return ok({"category": category.to_dict()}, "Category created", 201)

    except ConflictError as e:
        return fail(str(e), 409)
    except ValidationError as e:
        return fail(str(e), 400)
    except InvalidOperation:
        return fail("Invalid numeric value", 400)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return server_error()


@products_bp.get("/metal-types")
@require_auth
def list_metal_types_route():
    return ok({"metal_types": [m.to_dict() for m in catalog_service.list_metal_types()]})


@products_bp.post("/metal-types")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_metal_type_route():
    try:
        data = request.get_json(silent=True) or {}
        metal_type = catalog_service.create_metal_type(
            g.branch_context,
            name=data.get("name"),
            metal_code=data.get("metal_code"),
            purity_percentage=data.get("purity_percentage"),
        )
        return ok({"metal_type": metal_type.to_dict()}, "Metal type created", 201)

    except ConflictError as e:
        return fail(str(e), 409)
    except ValidationError as e:
        return fail(str(e), 400)
    except InvalidOperation:
        return fail("Invalid numeric value", 400)
    except Exception:
        current_app.logger.exception("Failed to create metal type")
        return server_error()


@products_bp.get("/products")
@require_auth
def list_products_route():
    result = catalog_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        metal_type_id=request.args.get("metal_type_id", type=int),
        status=request.args.get("status"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return ok(result)


@products_bp.get("/products/low-stock")
@require_auth
def low_stock_route():
    products = catalog_service.get_low_stock_products()
    return ok({"products": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/products/barcode/<string:barcode>")
@require_auth
def find_by_barcode_route(barcode: str):
    product = catalog_service.find_by_barcode(barcode)
    if not product:
        return fail("Product not found", 404)
    return ok({"product": product.to_dict()})


@products_bp.get("/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return ok({"product": catalog_service.get_product(product_id).to_dict()})
    except CatalogNotFoundError as e:
        return fail(str(e), 404)


@products_bp.post("/products")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_product_route():
    try:
        data = request.get_json(silent=True) or {}
        product = catalog_service.create_product(g.branch_context, data)
        return ok({"product": product.to_dict()}, "Product created", 201)

    except ConflictError as e:
        return fail(str(e), 409)
    except CatalogNotFoundError as e:
        return fail(str(e), 404)
    except CatalogError as e:
        return fail(str(e), 400, e.details)
    except ValidationError as e:
        return fail(str(e), 400)
    except InvalidOperation:
        return fail("Invalid numeric value", 400)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return server_error()


@products_bp.put("/products/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_product_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        product = catalog_service.update_product(g.branch_context, product_id, data)
        return ok({"product": product.to_dict()}, "Product updated")

    except ConflictError as e:
        return fail(str(e), 409)
    except CatalogNotFoundError as e:
        return fail(str(e), 404)
    except CatalogError as e:
        return fail(str(e), 400, e.details)
    except ValidationError as e:
        return fail(str(e), 400)
    except InvalidOperation:
        return fail("Invalid numeric value", 400)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return server_error()


@products_bp.post("/products/<int:product_id>/stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def adjust_stock_route(product_id: int):
    """Body: {"delta": -1}"""
    try:
        data = request.get_json(silent=True) or {}
        product = catalog_service.adjust_stock(g.branch_context, product_id, data.get("delta"))
        return ok({"product": product.to_dict()}, "Stock updated")

    except CatalogNotFoundError as e:
        return fail(str(e), 404)
    except CatalogError as e:
        return fail(str(e), 400, e.details)
    except ValidationError as e:
        return fail(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return server_error()
