"""Order creation and purchase lookup."""

from typing import Any, Dict, List

from database import ORDER_ITEMS, ORDERS, PACKS, StoreError
from errors import (
    INVALID_REQUEST,
    ORDER_CREATE_FAILED,
    ORDER_ITEMS_CREATE_FAILED,
    PURCHASES_READ_FAILED,
    PipelineError,
    missing_field,
)
from logging_config import StructuredLogger
from sanitize import clean_email
from schemas import CreateOrderRequest, Order, OrderItem, PurchasesRequest

logger = StructuredLogger(__name__)

DEFAULT_PROCESSING_FEE = 0.99


def create_order(store, req: CreateOrderRequest) -> Dict[str, Any]:
    """Insert a pending order and one item per cart entry.

    If the items cannot be written the order row is deleted again, so a
    buyer never pays for an order with nothing in it.
    """
    if not req.cartItems:
        raise missing_field("Cart items are required")
    if not req.totalAmount or req.totalAmount <= 0:
        raise PipelineError(INVALID_REQUEST, "Valid total amount is required", status_code=400)

    fee = req.processingFee or DEFAULT_PROCESSING_FEE
    order = Order(
        total_amount=req.totalAmount,
        processing_fee=fee,
        user_email=str(req.userEmail) if req.userEmail else None,
        user_location=req.userLocation,
        user_ip=req.userIp,
    )
    try:
        created = store.insert_one(ORDERS, order.model_dump())
    except StoreError as exc:
        logger.error("order_create_failed", error=exc.message)
        raise PipelineError(ORDER_CREATE_FAILED, "Failed to create order", step="order", detail=exc.message) from exc
    if not created:
        raise PipelineError(ORDER_CREATE_FAILED, "Failed to create order", step="order")

    items = [
        OrderItem(order_id=created["id"], pin_pack_id=item.id, price=item.price).model_dump()
        for item in req.cartItems
    ]
    try:
        store.insert(ORDER_ITEMS, items)
    except StoreError as exc:
        logger.error("order_items_create_failed", order_id=created["id"], error=exc.message)
        try:
            store.delete(ORDERS, {"id": created["id"]})
        except StoreError as cleanup_exc:
            logger.error("order_cleanup_failed", order_id=created["id"], error=cleanup_exc.message)
        raise PipelineError(
            ORDER_ITEMS_CREATE_FAILED, "Failed to create order items", step="order_items", detail=exc.message
        ) from exc

    logger.info("order_created", order_id=created["id"], items=len(items), total=req.totalAmount)
    return created


def purchased_packs(store, req: PurchasesRequest) -> List[Dict[str, Any]]:
    """Packs bought in completed orders placed or paid for by ``email``."""
    email = clean_email(req.email)
    if not email:
        raise missing_field("Email is required")

    try:
        orders = store.select(
            ORDERS,
            eq={"status": "completed"},
            or_=[{"user_email": email}, {"customer_email": email}],
            fields=["id"],
        )
        if not orders:
            return []
        items = store.select(ORDER_ITEMS, in_={"order_id": [o["id"] for o in orders]}, fields=["pin_pack_id"])
        if not items:
            return []
        pack_ids = list(dict.fromkeys(i["pin_pack_id"] for i in items if i.get("pin_pack_id")))
        return store.select(PACKS, in_={"id": pack_ids})
    except StoreError as exc:
        raise PipelineError(PURCHASES_READ_FAILED, exc.message, detail=exc.message) from exc
