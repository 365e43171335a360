from fastapi import Depends, HTTPException
from marketplace.models.user import User
from marketplace.utils.token import get_current_user


def require_admin(current_user: User = Depends(get_current_user)):
    if current_user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


def require_seller_or_admin(current_user: User = Depends(get_current_user)):
    if current_user.role not in ("seller", "admin"):
        raise HTTPException(status_code=403, detail="Seller or admin access required")
    return current_user
