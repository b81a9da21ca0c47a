from .auth import User, SessionToken
from .catalog import Product, ProductVariant, ProductStockKey, Bundle, bundle_products
from .orders import Order, OrderEvent
from .loyalty import LoyaltyAccount, PointTransaction, Coupon, ReferralCode, Referral
from .premium import PremiumMembership, PremiumContent
from .support import SupportTicket
from .settings import StoreSettings, FlashSaleConfig, FlashSaleItem

__all__ = [
    'User', 'SessionToken',
    'Product', 'ProductVariant', 'ProductStockKey', 'Bundle', 'bundle_products',
    'Order', 'OrderEvent',
    'LoyaltyAccount', 'PointTransaction', 'Coupon', 'ReferralCode', 'Referral',
    'PremiumMembership', 'PremiumContent',
    'SupportTicket',
    'StoreSettings', 'FlashSaleConfig', 'FlashSaleItem',
]
