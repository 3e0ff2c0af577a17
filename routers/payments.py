from fastapi import APIRouter, Depends, HTTPException, status, Request, Header, Query
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from typing import List, Optional
import logging

from core.config import settings
from core.limiter import sync_rate_limit
from dependencies.auth import require_service_token
from schemas import OrderCreate, OrderResponse, ack_response
from services.errors import GatewayError, OrderConflict
from services.payment_service import PaymentService, build_payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

_payment_service: Optional[PaymentService] = None


def get_payment_service() -> PaymentService:
    global _payment_service
    if _payment_service is None:
        _payment_service = build_payment_service(settings)
    return _payment_service


def _ack_json(ack) -> JSONResponse:
    return JSONResponse(
        status_code=ack.http_status,
        content=ack_response(ack).model_dump(mode="json"),
    )


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_signature: Optional[str] = Header(None, alias="X-Signature"),
    service: PaymentService = Depends(get_payment_service),
):
    """
    PayOS webhook endpoint.
    2xx (applied, duplicate, already final) stops gateway redelivery;
    any other status asks the gateway to retry later.
    """
    body_bytes = await request.body()
    # The engine may back off between optimistic retries; keep that off the event loop
    ack = await run_in_threadpool(service.handle_webhook, body_bytes, x_signature)
    logger.info(f"Webhook handled: {ack.outcome.value} (order {ack.order_reference})")
    return _ack_json(ack)


@router.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    order_data: OrderCreate,
    caller: str = Depends(require_service_token),
    service: PaymentService = Depends(get_payment_service),
):
    """Create a gateway payment link and record the order before checkout is shown"""
    try:
        order = service.create_order(
            internal_id=order_data.internal_id,
            amount=order_data.amount,
            description=order_data.description,
            currency=order_data.currency,
        )
    except OrderConflict:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Payment order already exists")
    except GatewayError as e:
        logger.error(f"Gateway order creation failed for {order_data.internal_id} (caller {caller}): {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment gateway error")
    return OrderResponse.from_order(order)


@router.get("/orders", response_model=List[OrderResponse])
def list_orders(
    internal_id: str = Query(..., min_length=1),
    caller: str = Depends(require_service_token),
    service: PaymentService = Depends(get_payment_service),
):
    """Payment history for one booking, newest first"""
    return [OrderResponse.from_order(order) for order in service.list_orders(internal_id)]


@router.get("/orders/{order_reference}", response_model=OrderResponse)
def get_order(
    order_reference: str,
    caller: str = Depends(require_service_token),
    service: PaymentService = Depends(get_payment_service),
):
    """Get payment order details"""
    order = service.get_order(order_reference)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment order not found")
    return OrderResponse.from_order(order)


@router.post("/orders/{order_reference}/sync", dependencies=[Depends(sync_rate_limit)])
def sync_order(
    order_reference: str,
    caller: str = Depends(require_service_token),
    service: PaymentService = Depends(get_payment_service),
):
    """Poll the gateway for this order and reconcile the answer"""
    try:
        ack = service.sync_order(order_reference)
    except GatewayError as e:
        logger.error(f"Gateway status query failed for {order_reference}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment gateway error")
    return _ack_json(ack)
