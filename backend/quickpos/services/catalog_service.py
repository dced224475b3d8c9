# Overview: Service-layer operations for the catalog; categories, products, menus and branches.

"""
Catalog Service

Order entry reads categories and products from here; managers maintain them.

- A branch with a menu only offers the categories linked to that menu.
  A branch without a menu offers every category.
- Deleting a category deletes its products. Existing order items keep their
  name/price snapshot and a dangling product_id.
- update_* return None and delete_* return False when the row does not exist;
  routes turn that into 404.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Branch, Category, Menu, MenuCategory, Product
from ..validation import PayloadPolicy, ValidationError, clean_payload, check_price, check_sort_order

logger = logging.getLogger(__name__)

PRODUCT_POLICY = PayloadPolicy(
    fields=frozenset({"category_id", "name", "description", "price_cents", "image_url", "available", "sort_order"}),
    required=frozenset({"category_id", "name", "price_cents"}),
)
CATEGORY_POLICY = PayloadPolicy(
    fields=frozenset({"name", "image_url", "sort_order"}),
    required=frozenset({"name"}),
)
MENU_POLICY = PayloadPolicy(
    fields=frozenset({"name", "description"}),
    required=frozenset({"name"}),
)


def _apply_patch(row, patch: dict) -> None:
    for k, v in patch.items():
        setattr(row, k, v)


def _require_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise ValidationError("Category not found", details={"category_id": category_id})
    return category


# =============================================================================
# Reads
# =============================================================================

def list_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.name.asc(), Branch.id.asc()).all()


def get_branch(branch_id: int) -> Branch | None:
    return db.session.get(Branch, branch_id)


def list_categories(branch_id: int | None = None) -> list[Category]:
    """Categories offered at a branch, by sort_order."""
    query = db.session.query(Category)
    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if branch is not None and branch.menu_id is not None:
            query = query.join(MenuCategory, MenuCategory.category_id == Category.id).filter(
                MenuCategory.menu_id == branch.menu_id
            )
    return query.order_by(Category.sort_order.asc(), Category.name.asc(), Category.id.asc()).all()


def list_products(
    category_id: int | None = None,
    available_only: bool = True,
    order_by_name: bool = False,
) -> list[Product]:
    """
    Products for the order-entry grid (by sort_order) or for the order
    editor's picker (by name).
    """
    query = db.session.query(Product)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if available_only:
        query = query.filter(Product.available.is_(True))
    if order_by_name:
        query = query.order_by(Product.name.asc(), Product.id.asc())
    else:
        query = query.order_by(Product.sort_order.asc(), Product.name.asc(), Product.id.asc())
    return query.all()


def get_product(product_id) -> Product | None:
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        return None
    return db.session.get(Product, product_id)


def list_menus() -> list[Menu]:
    return db.session.query(Menu).order_by(Menu.name.asc(), Menu.id.asc()).all()


def menu_category_ids(menu_id: int) -> list[int]:
    rows = (
        db.session.query(MenuCategory.category_id)
        .filter(MenuCategory.menu_id == menu_id)
        .order_by(MenuCategory.category_id.asc())
        .all()
    )
    return [row[0] for row in rows]


# =============================================================================
# Products
# =============================================================================

def create_product(payload: dict) -> Product:
    patch = clean_payload(Product, payload, PRODUCT_POLICY, creating=True)
    check_price(patch)
    check_sort_order(patch)
    _require_category(patch["category_id"])

    product = Product()
    _apply_patch(product, patch)
    db.session.add(product)
    db.session.commit()
    logger.info("Created product %s (%s)", product.id, product.name)
    return product


def update_product(product_id: int, payload: dict) -> Product | None:
    product = db.session.get(Product, product_id)
    if product is None:
        return None
    patch = clean_payload(Product, payload, PRODUCT_POLICY, creating=False)
    check_price(patch)
    check_sort_order(patch)
    if "category_id" in patch:
        _require_category(patch["category_id"])

    _apply_patch(product, patch)
    db.session.commit()
    return product


def delete_product(product_id: int) -> bool:
    product = db.session.get(Product, product_id)
    if product is None:
        return False
    db.session.delete(product)
    db.session.commit()
    logger.info("Deleted product %s", product_id)
    return True


# =============================================================================
# Categories
# =============================================================================

def create_category(payload: dict) -> Category:
    patch = clean_payload(Category, payload, CATEGORY_POLICY, creating=True)
    check_sort_order(patch)
    category = Category()
    _apply_patch(category, patch)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, payload: dict) -> Category | None:
    category = db.session.get(Category, category_id)
    if category is None:
        return None
    patch = clean_payload(Category, payload, CATEGORY_POLICY, creating=False)
    check_sort_order(patch)
    _apply_patch(category, patch)
    db.session.commit()
    return category


def delete_category(category_id: int) -> bool:
    """Delete a category together with its products and menu links."""
    category = db.session.get(Category, category_id)
    if category is None:
        return False
    db.session.query(MenuCategory).filter(MenuCategory.category_id == category_id).delete(
        synchronize_session=False
    )
    db.session.delete(category)
    db.session.commit()
    logger.info("Deleted category %s", category_id)
    return True


# =============================================================================
# Menus
# =============================================================================

def create_menu(payload: dict) -> Menu:
    patch = clean_payload(Menu, payload, MENU_POLICY, creating=True)
    menu = Menu()
    _apply_patch(menu, patch)
    db.session.add(menu)
    db.session.commit()
    return menu


def update_menu(menu_id: int, payload: dict) -> Menu | None:
    menu = db.session.get(Menu, menu_id)
    if menu is None:
        return None
    patch = clean_payload(Menu, payload, MENU_POLICY, creating=False)
    _apply_patch(menu, patch)
    db.session.commit()
    return menu


def delete_menu(menu_id: int) -> bool:
    """Delete a menu; branches using it fall back to the full catalog."""
    menu = db.session.get(Menu, menu_id)
    if menu is None:
        return False
    db.session.query(MenuCategory).filter(MenuCategory.menu_id == menu_id).delete(synchronize_session=False)
    db.session.query(Branch).filter(Branch.menu_id == menu_id).update(
        {Branch.menu_id: None}, synchronize_session=False
    )
    db.session.delete(menu)
    db.session.commit()
    return True


def set_menu_categories(menu_id: int, category_ids) -> Menu | None:
    """Replace the categories linked to a menu."""
    menu = db.session.get(Menu, menu_id)
    if menu is None:
        return None
    if not isinstance(category_ids, list) or any(
        isinstance(cid, bool) or not isinstance(cid, int) for cid in category_ids
    ):
        raise ValidationError("category_ids must be a list of integers")

    wanted = set(category_ids)
    if wanted:
        found = {row[0] for row in db.session.query(Category.id).filter(Category.id.in_(wanted)).all()}
        missing = sorted(wanted - found)
        if missing:
            raise ValidationError("Unknown categories", details={"category_ids": missing})

    db.session.query(MenuCategory).filter(MenuCategory.menu_id == menu_id).delete(synchronize_session=False)
    for cid in sorted(wanted):
        db.session.add(MenuCategory(menu_id=menu_id, category_id=cid))
    db.session.commit()
    return menu


def assign_menu_to_branch(branch_id: int, menu_id: int | None) -> Branch | None:
    """Point a branch at a menu, or at no menu with menu_id=None."""
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        return None
    if menu_id is not None:
        if isinstance(menu_id, bool) or not isinstance(menu_id, int):
            raise ValidationError("menu_id must be an integer or null")
        if db.session.get(Menu, menu_id) is None:
            raise ValidationError("Menu not found", details={"menu_id": menu_id})
    branch.menu_id = menu_id
    db.session.commit()
    return branch
