from marketplace.models.user import User
from marketplace.models.store import Store
from marketplace.models.product import Product
from marketplace.models.cart import Cart, CartItem
from marketplace.models.coupon import Coupon
from marketplace.models.order_item import OrderItem
from marketplace.models.order import Order
from marketplace.models.order_event import OrderEvent
from marketplace.models.payment import Payment
from marketplace.models.notifications import Notification

# add ALL models here
