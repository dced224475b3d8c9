# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

"""
Catalog routes.

SECURITY: All routes require authentication.
- Reads (branches, categories, products, menus) are open to every role
- Writes require the manager role
"""
from flask import Blueprint, request, g, current_app

from ..models.auth import ROLE_MANAGER
from ..services import catalog_service
from ..validation import ValidationError
from ..decorators import require_auth, require_role

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _bool_arg(name: str, default: bool) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# =============================================================================
# Reads
# =============================================================================

@catalog_bp.get("/branches")
@require_auth
def list_branches():
    branches = catalog_service.list_branches()
    return {"items": [b.to_dict() for b in branches], "count": len(branches)}


@catalog_bp.get("/categories")
@require_auth
def list_categories():
    """
    Categories for order entry.

    Query params:
    - branch_id: int (optional) - defaults to the caller's branch; a branch
      with a menu only shows that menu's categories
    """
    branch_id = request.args.get("branch_id", type=int)
    if branch_id is None:
        branch_id = g.session_context.branch_id
    categories = catalog_service.list_categories(branch_id)
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@catalog_bp.get("/products")
@require_auth
def list_products():
    """
    Query params:
    - category_id: int (optional)
    - available_only: bool (default true)
    - sort: "name" for the order editor's picker, otherwise sort_order
    """
    products = catalog_service.list_products(
        category_id=request.args.get("category_id", type=int),
        available_only=_bool_arg("available_only", True),
        order_by_name=request.args.get("sort") == "name",
    )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@catalog_bp.get("/menus")
@require_auth
def list_menus():
    menus = catalog_service.list_menus()
    items = []
    for menu in menus:
        data = menu.to_dict()
        data["category_ids"] = catalog_service.menu_category_ids(menu.id)
        items.append(data)
    return {"items": items, "count": len(items)}


# =============================================================================
# Products
# =============================================================================

@catalog_bp.post("/products")
@require_auth
@require_role(ROLE_MANAGER)
def create_product():
    try:
        product = catalog_service.create_product(request.get_json(silent=True))
        return {"product": product.to_dict()}, 201
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400


@catalog_bp.put("/products/<int:product_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_product(product_id: int):
    try:
        product = catalog_service.update_product(product_id, request.get_json(silent=True))
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    if product is None:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}


@catalog_bp.delete("/products/<int:product_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_product(product_id: int):
    if not catalog_service.delete_product(product_id):
        return {"error": "Product not found"}, 404
    return {"deleted": True}


# =============================================================================
# Categories
# =============================================================================

@catalog_bp.post("/categories")
@require_auth
@require_role(ROLE_MANAGER)
def create_category():
    try:
        category = catalog_service.create_category(request.get_json(silent=True))
        return {"category": category.to_dict()}, 201
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400


@catalog_bp.put("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_category(category_id: int):
    try:
        category = catalog_service.update_category(category_id, request.get_json(silent=True))
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    if category is None:
        return {"error": "Category not found"}, 404
    return {"category": category.to_dict()}


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_category(category_id: int):
    """Deletes the category's products too."""
    if not catalog_service.delete_category(category_id):
        return {"error": "Category not found"}, 404
    return {"deleted": True}


# =============================================================================
# Menus and branches
# =============================================================================

@catalog_bp.post("/menus")
@require_auth
@require_role(ROLE_MANAGER)
def create_menu():
    try:
        menu = catalog_service.create_menu(request.get_json(silent=True))
        return {"menu": menu.to_dict()}, 201
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400


@catalog_bp.put("/menus/<int:menu_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_menu(menu_id: int):
    try:
        menu = catalog_service.update_menu(menu_id, request.get_json(silent=True))
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    if menu is None:
        return {"error": "Menu not found"}, 404
    return {"menu": menu.to_dict()}


@catalog_bp.delete("/menus/<int:menu_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_menu(menu_id: int):
    if not catalog_service.delete_menu(menu_id):
        return {"error": "Menu not found"}, 404
    return {"deleted": True}


@catalog_bp.put("/menus/<int:menu_id>/categories")
@require_auth
@require_role(ROLE_MANAGER)
def set_menu_categories(menu_id: int):
    """Body: {"category_ids": [1, 2, 3]}"""
    data = request.get_json(silent=True) or {}
    try:
        menu = catalog_service.set_menu_categories(menu_id, data.get("category_ids"))
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    if menu is None:
        return {"error": "Menu not found"}, 404
    return {"menu": menu.to_dict(), "category_ids": catalog_service.menu_category_ids(menu_id)}


@catalog_bp.put("/branches/<int:branch_id>/menu")
@require_auth
@require_role(ROLE_MANAGER)
def assign_branch_menu(branch_id: int):
    """Body: {"menu_id": 3} or {"menu_id": null}"""
    data = request.get_json(silent=True) or {}
    try:
        branch = catalog_service.assign_menu_to_branch(branch_id, data.get("menu_id"))
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    if branch is None:
        return {"error": "Branch not found"}, 404
    current_app.logger.info("Branch %s now uses menu %s", branch_id, branch.menu_id)
    return {"branch": branch.to_dict()}
