from .auth import Role, User, SessionToken
from .catalog import ManufacturerStatus, Manufacturer, Product
from .orders import OrderStatus, Order, OrderItem
from .audit import AuditEvent

__all__ = [
    'Role', 'User', 'SessionToken',
    'ManufacturerStatus', 'Manufacturer', 'Product',
    'OrderStatus', 'Order', 'OrderItem',
    'AuditEvent',
]
