from .catalog import Product, OptionType, OptionValue
from .customers import Customer, Address
from .carts import Cart, CartLine, cart_line_options
from .orders import Order, OrderLine, OrderLineOption, Payment
from .ledger import StockMovement, OrderEvent

__all__ = [
    'Product', 'OptionType', 'OptionValue',
    'Customer', 'Address',
    'Cart', 'CartLine', 'cart_line_options',
    'Order', 'OrderLine', 'OrderLineOption', 'Payment',
    'StockMovement', 'OrderEvent',
]
