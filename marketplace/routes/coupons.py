from fastapi import APIRouter, Depends
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.models.user import User
from marketplace.schemas.coupon_schemas import CouponValidateRequest
from marketplace.services import cart_service, coupon_service
from marketplace.utils.serializers import coupon_dict
from marketplace.utils.token import get_current_user

router = APIRouter()


@router.get("/mine")
def my_coupons(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    coupons = coupon_service.list_user_coupons(session, current_user.id)
    return {"coupons": [coupon_dict(c) for c in coupons]}


@router.post("/welcome")
def issue_welcome(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    coupon = coupon_service.issue_welcome_coupon(session, current_user.id)
    return {"coupon": coupon_dict(coupon)}


@router.post("/validate")
def validate_coupon(
    data: CouponValidateRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart_total = data.cart_total
    if cart_total is None:
        cart_total = cart_service.get_or_create_cart(session, current_user.id).total

    result = coupon_service.validate(session, current_user.id, cart_total, code=data.code)

    return {
        "valid": result.valid,
        "reason": result.reason,
        "discount_amount": result.discount,
        "final_total": max(cart_total - result.discount, 0),
        "coupon": coupon_dict(result.coupon) if result.valid else None,
    }
