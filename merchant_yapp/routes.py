from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from merchant_yapp.auth import verify_token
from merchant_yapp.bridge import ApplyResult, PaymentBridge
from merchant_yapp.checkout import (
    PaymentInitiationError,
    build_payment_request,
    create_order,
    select_flow,
)
from merchant_yapp.config import settings
from merchant_yapp.confirmation import ConfirmationView, InvalidLink
from merchant_yapp.context import BrowsingContext
from merchant_yapp.database import SessionLocal
from merchant_yapp.messages import Unrecognized, parse_message
from merchant_yapp.normalizer import CompletionNormalizer
from merchant_yapp.poller import ConfirmationPoller
from merchant_yapp.schemas import CheckoutRequest, PaymentCompleted
from merchant_yapp.store import OrderStore
from merchant_yapp.verification import Rejected

router = APIRouter()


def get_store(origin: Optional[str] = Header(None)) -> OrderStore:
    return OrderStore(SessionLocal, origin or settings.app_origin)


async def get_poller():
    async with httpx.AsyncClient(base_url=settings.indexer_url, timeout=10.0) as client:
        yield ConfirmationPoller(client, settings.poll_interval, settings.poll_max_attempts)


def request_context(request: Request) -> BrowsingContext:
    url = request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return BrowsingContext(url=url, origin=settings.app_origin)


def apply_event(request: Request, event: PaymentCompleted, store: OrderStore) -> ApplyResult:
    bridge = PaymentBridge(request_context(request), store, confirmation_path=settings.confirmation_path)
    return bridge.apply(event)


@router.post("/checkout")
def checkout(request: CheckoutRequest, store: OrderStore = Depends(get_store)):
    flow = select_flow(request.is_mobile, request.is_touch, request.embedded)
    try:
        order = create_order(
            request.product,
            store,
            merchant_ens=settings.merchant_ens,
            merchant_address=settings.merchant_address,
            fingerprint_width=settings.memo_fingerprint_width,
            truncation=settings.memo_truncation,
        )
        payment_request = build_payment_request(
            order,
            request.product,
            flow,
            origin=settings.app_origin,
            merchant_ens=settings.merchant_ens,
            merchant_address=settings.merchant_address,
            prefer_address_over_ens=settings.prefer_address_over_ens,
            confirmation_path=settings.confirmation_path,
        )
    except PaymentInitiationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    return {
        "order": order.model_dump(mode="json"),
        "payment_request": payment_request.model_dump(mode="json"),
    }


@router.get("/confirmation")
async def confirmation(
    request: Request,
    orderId: Optional[str] = None,
    txHash: Optional[str] = None,
    chainId: Optional[str] = None,
    store: OrderStore = Depends(get_store),
    poller: ConfirmationPoller = Depends(get_poller),
):
    # Redirect returns land here with txHash/chainId appended.
    context = request_context(request)
    normalizer = CompletionNormalizer(context, settings.webhook_dispatch_delay)
    bridge = PaymentBridge(context, store, confirmation_path=settings.confirmation_path)
    normalizer.subscribe(bridge.apply)
    normalizer.accept_redirect(orderId)

    view = ConfirmationView(
        store,
        poller,
        required_chain_id=settings.required_chain_id,
        merchant_root=settings.merchant_root_ens or None,
        shop_name=settings.shop_name,
        shop_telegram_handle=settings.shop_telegram_handle,
        receipt_base_url=settings.receipt_base_url,
    )
    try:
        outcome = await view.load({"orderId": orderId, "txHash": txHash, "chainId": chainId})
    finally:
        view.close()

    if isinstance(outcome, InvalidLink):
        raise HTTPException(status_code=400, detail=outcome.message)
    if isinstance(outcome, Rejected):
        return {
            "status": "rejected",
            "reason": outcome.reason.value,
            "message": outcome.message,
            "details": outcome.details,
            "retryable": outcome.retryable,
        }

    details = outcome.order_details
    return {
        "status": "accepted",
        "order": details.model_dump(mode="json"),
        **view.links(details, txHash),
    }


@router.post("/messages", status_code=202)
async def receive_message(request: Request, store: OrderStore = Depends(get_store)):
    try:
        data = await request.json()
    except ValueError:
        data = None

    message = parse_message(data)
    if isinstance(message, Unrecognized):
        return {"status": "ignored"}

    result = apply_event(request, message.event, store)
    return {"status": result.status.value, "confirmation_url": result.confirmation_url}


@router.get("/orders/{order_id}")
def get_order(order_id: str, store: OrderStore = Depends(get_store), auth=Depends(verify_token)):
    order = store.load_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    payment = store.load_payment(order_id)
    return {
        "order": order.model_dump(mode="json"),
        "payment": payment.model_dump(mode="json") if payment else None,
    }

