from .enums import OrderStatus, PaymentMethod, PaymentStatus, RefundStatus, AuditKind, UserRole
from .auth import User, SessionToken
from .catalog import Product
from .orders import Order, OrderLine, OrderAuditEntry, PaymentRecord, PaymentDetails, RefundRecord, AuditTrailError

__all__ = [
    'OrderStatus', 'PaymentMethod', 'PaymentStatus', 'RefundStatus', 'AuditKind', 'UserRole',
    'User', 'SessionToken',
    'Product',
    'Order', 'OrderLine', 'OrderAuditEntry', 'PaymentRecord', 'PaymentDetails', 'RefundRecord',
    'AuditTrailError',
]
