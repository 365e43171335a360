from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.models.product import Product
from marketplace.models.user import User
from marketplace.schemas.cart_schemas import CartAddRequest, CartUpdateRequest
from marketplace.services import cart_service
from marketplace.utils.serializers import cart_snapshot
from marketplace.utils.token import get_current_user  # JWT dependency


router = APIRouter()


# View Cart

@router.get("/")
def get_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = cart_service.get_or_create_cart(session, current_user.id)
    return cart_snapshot(cart)


# Add to Cart

@router.post("/add")
def add_to_cart(
    data: CartAddRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    product = session.get(Product, data.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    # price is snapshotted from the catalog at the time of adding
    cart = cart_service.add_line(
        session,
        current_user.id,
        product,
        data.quantity,
        price=product.price,
        selected_variants=data.selected_variants,
    )
    return cart_snapshot(cart)


# Update Cart

@router.put("/update/{line_id}")
def update_cart_line(
    line_id: int,
    data: CartUpdateRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = cart_service.set_quantity(session, current_user.id, line_id, data.quantity)
    return cart_snapshot(cart)


# Remove Cart

@router.delete("/remove/{line_id}")
def remove_cart_line(
    line_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = cart_service.remove_line(session, current_user.id, line_id)
    return cart_snapshot(cart)


@router.delete("/clear")
def clear_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = cart_service.clear(session, current_user.id)
    return cart_snapshot(cart)


@router.get("/reconcile")
def reconcile_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return cart_service.reconcile(session, current_user.id)
