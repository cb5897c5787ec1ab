from .auth import User, SessionToken, USER_ROLES
from .orders import DcOrder, DcOrderHistory, Sale
from .challans import DeliveryChallan, DcProductLine
from .warehouse import WarehouseItem, StockMovement, MOVEMENT_TYPES

__all__ = [
    'User', 'SessionToken', 'USER_ROLES',
    'DcOrder', 'DcOrderHistory', 'Sale',
    'DeliveryChallan', 'DcProductLine',
    'WarehouseItem', 'StockMovement',
]
