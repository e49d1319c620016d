from .auth import User, PendingUser, PasswordReset, RefreshToken, UserInvite
from .catalog import Product
from .cart import CartItem
from .addresses import Address
from .orders import Order, OrderItem, PaymentEvent
from .shipping import ShippingZone, ShippingExclusion
from .tax import TaxRate
from .system import RateLimit, JobSchedule

__all__ = [
    'User', 'PendingUser', 'PasswordReset', 'RefreshToken', 'UserInvite',
    'Product',
    'CartItem',
    'Address',
    'Order', 'OrderItem', 'PaymentEvent',
    'ShippingZone', 'ShippingExclusion',
    'TaxRate',
    'RateLimit', 'JobSchedule',
]
