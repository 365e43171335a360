from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.models.user import User
from marketplace.schemas.payment_schemas import PaymentCreateRequest, PaymentWebhookRequest
from marketplace.services import payment_service
from marketplace.utils.serializers import payment_dict
from marketplace.utils.token import get_current_user

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_payment(
    data: PaymentCreateRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    payment = payment_service.create_payment(
        session,
        current_user,
        data.order_id,
        data.method,
        customer=data.customer_info.model_dump() if data.customer_info else None,
        shipping_fee=data.shipping_fee,
    )

    if payment.method == "qr_code":
        message = "QR payment created, scan the code and upload your slip"
    else:
        message = "Payment completed, your order is being processed"

    return {"message": message, "payment": payment_dict(payment)}


@router.get("")
def my_payments(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    payments = payment_service.list_user_payments(session, current_user)
    return {"payments": [payment_dict(p) for p in payments]}


# Simulated gateway callback, unauthenticated
@router.post("/webhook")
def payment_webhook(
    data: PaymentWebhookRequest,
    session: Session = Depends(get_session),
):
    payment = payment_service.handle_webhook(
        session, data.transaction_id, data.status, data.gateway_id
    )
    return {"message": "Webhook processed", "payment_id": payment.id, "status": payment.status}


@router.get("/{payment_id}")
def payment_detail(
    payment_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    payment = payment_service.get_payment_for(session, current_user, payment_id)
    return payment_dict(payment)


@router.get("/{payment_id}/promptpay")
def promptpay(
    payment_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return {"promptpay": payment_service.promptpay_qr(session, current_user, payment_id)}


@router.post("/{payment_id}/slip")
def upload_slip(
    payment_id: int,
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    payment = payment_service.upload_slip(
        session,
        current_user,
        payment_id,
        file.file,
        file.filename,
        file.content_type,
    )

    if payment.status == "waiting_approval":
        message = "Slip uploaded, waiting for admin approval"
    else:
        message = "Slip uploaded, payment completed"

    return {"message": message, "payment": payment_dict(payment)}
