from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent
from .catalog import Product, CartItem
from .orders import Order, OrderItem, OrderStatusHistory

__all__ = [
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'SecurityEvent',
    'Product', 'CartItem',
    'Order', 'OrderItem', 'OrderStatusHistory',
]
