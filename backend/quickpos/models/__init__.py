from .catalog import Branch, Menu, MenuCategory, Category, Product
from .auth import User, SessionToken
from .orders import Order, OrderItem, OrderAuditLog, OrderSequence

__all__ = [
    'Branch', 'Menu', 'MenuCategory', 'Category', 'Product',
    'User', 'SessionToken',
    'Order', 'OrderItem', 'OrderAuditLog', 'OrderSequence',
]
