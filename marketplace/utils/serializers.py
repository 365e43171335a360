from typing import Iterable, Optional

from marketplace.models.cart import Cart
from marketplace.models.coupon import Coupon
from marketplace.models.notifications import Notification
from marketplace.models.order import Order
from marketplace.models.order_event import OrderEvent
from marketplace.models.payment import Payment


def cart_snapshot(cart: Cart) -> dict:
    return {
        "cart_id": cart.id,
        "version": cart.version,
        "items": [
            {
                "line_id": line.id,
                "product_id": line.product_id,
                "quantity": line.quantity,
                "price": line.price,
                "selected_variants": line.selected_variants,
                "line_total": line.line_total,
            }
            for line in cart.items
        ],
        "item_count": sum(line.quantity for line in cart.items),
        "total": cart.total,
    }


def coupon_dict(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "kind": coupon.kind,
        "discount_amount": coupon.discount_amount,
        "discount_percent": coupon.discount_percent,
        "max_discount": coupon.max_discount,
        "min_purchase": coupon.min_purchase,
        "expires_at": coupon.expires_at,
        "is_used": coupon.is_used,
        "used_at": coupon.used_at,
    }


def payment_dict(payment: Payment) -> dict:
    return {
        "payment_id": payment.id,
        "order_id": payment.order_id,
        "transaction_id": payment.transaction_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "method": payment.method,
        "status": payment.status,
        "qr_code_data": payment.qr_code_data,
        "slip_url": payment.slip_url,
        "customer": {
            "name": payment.customer_name,
            "email": payment.customer_email,
            "phone": payment.customer_phone,
            "address": payment.customer_address,
        },
        "approved_by": payment.approved_by,
        "approved_at": payment.approved_at,
        "rejected_by": payment.rejected_by,
        "rejected_at": payment.rejected_at,
        "rejection_reason": payment.rejection_reason,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
    }


def order_dict(order: Order, payments: Optional[Iterable[Payment]] = None) -> dict:
    data = {
        "order_id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "subtotal": order.subtotal,
        "discount_amount": order.discount_amount,
        "discount_code": order.discount_code,
        "total": order.total,
        "shipping_address": order.shipping_address,
        "shipping_phone": order.shipping_phone,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "items": [
            {
                "product_id": i.product_id,
                "store_id": i.store_id,
                "title": i.product_title,
                "price": i.price,
                "quantity": i.quantity,
                "selected_variants": i.selected_variants,
                "total": i.line_total,
            }
            for i in order.items
        ],
    }
    if payments is not None:
        data["payments"] = [payment_dict(p) for p in payments]
    return data


def event_dict(event: OrderEvent) -> dict:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "payment_id": event.payment_id,
        "label": event.label,
        "meta": event.meta,
        "actor_id": event.actor_id,
        "actor_role": event.actor_role,
        "created_at": event.created_at,
    }


def notification_dict(n: Notification) -> dict:
    return {
        "notification_id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "order_id": n.order_id,
        "payment_id": n.payment_id,
        "target_role": n.target_role,
        "data": n.data,
        "is_read": n.is_read,
        "created_at": n.created_at,
    }
