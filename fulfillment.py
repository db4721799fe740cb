"""
Order fulfillment after PayPal confirms a payment.

The order's own status update is authoritative: once it succeeds the call
succeeds. Download accounting for each purchased pack runs afterwards, item
by item, and a failed item never stops the others or changes the response.
What happened to each item is collected in a ReconciliationReport and
written to the log.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from database import DOWNLOAD_EVENTS, ORDER_ITEMS, ORDERS, PACKS, StoreError
from errors import (
    ORDER_ITEMS_READ_FAILED,
    ORDER_UPDATE_FAILED,
    PipelineError,
    missing_field,
)
from logging_config import StructuredLogger
from schemas import CompleteOrderRequest, DownloadEvent, utcnow

logger = StructuredLogger(__name__)

COUNTER_FIELD = "download_count"


class CounterUnavailable(Exception):
    """A counter strategy could not apply the increment."""


class CounterStrategy:
    name = "base"

    def __init__(self, store):
        self.store = store

    def increment(self, pack_id: str) -> Optional[int]:
        """Add one to the pack's download count.

        Returns the new value, or None when no pack matched.
        Raises CounterUnavailable if the update could not be applied.
        """
        raise NotImplementedError


class AtomicCounter(CounterStrategy):
    """Single server-side ``$inc``; safe under concurrent purchases."""

    name = "atomic"

    def increment(self, pack_id: str) -> Optional[int]:
        try:
            row = self.store.increment(PACKS, pack_id, COUNTER_FIELD)
        except StoreError as exc:
            raise CounterUnavailable(exc.message) from exc
        if row is None:
            return None
        return row.get(COUNTER_FIELD)


class ReadWriteCounter(CounterStrategy):
    """Read, add one, write back.

    Two concurrent calls for the same pack can both read N and both write
    N + 1; one purchase is then not counted.
    """

    name = "read_write"

    def increment(self, pack_id: str) -> Optional[int]:
        try:
            pack = self.store.select_one(PACKS, {"id": pack_id})
        except StoreError as exc:
            raise CounterUnavailable(f"read failed: {exc.message}") from exc
        if pack is None:
            raise CounterUnavailable("pack not found")

        value = (pack.get(COUNTER_FIELD) or 0) + 1
        try:
            updated = self.store.update(PACKS, {"id": pack_id}, {COUNTER_FIELD: value})
        except StoreError as exc:
            raise CounterUnavailable(f"write failed: {exc.message}") from exc
        if updated is None:
            raise CounterUnavailable("write matched no pack")
        return value


@dataclass
class ItemOutcome:
    pack_id: str
    status: str  # counted | no_pack | failed
    strategy: Optional[str] = None
    download_count: Optional[int] = None
    event_recorded: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    order_id: str
    items: List[ItemOutcome] = field(default_factory=list)

    @property
    def counted(self) -> int:
        return sum(1 for i in self.items if i.status == "counted")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.status == "failed")

    def as_log_fields(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "items": len(self.items),
            "counted": self.counted,
            "failed": self.failed,
            "failed_packs": [i.pack_id for i in self.items if i.status == "failed"],
        }


class DownloadCounter:
    """Applies the configured counter strategies in order until one works."""

    def __init__(self, store):
        self.store = store
        self.strategies: List[CounterStrategy] = []
        if getattr(store, "supports_atomic_increment", False):
            self.strategies.append(AtomicCounter(store))
        self.strategies.append(ReadWriteCounter(store))

    def reconcile(self, order_id: str, pack_id: str) -> ItemOutcome:
        outcome = ItemOutcome(pack_id=pack_id, status="failed")
        for strategy in self.strategies:
            try:
                value = strategy.increment(pack_id)
            except CounterUnavailable as exc:
                outcome.errors.append(f"{strategy.name}: {exc}")
                logger.warning("download_count_strategy_failed", pack_id=pack_id, strategy=strategy.name, error=str(exc))
                continue

            outcome.strategy = strategy.name
            if value is None:
                outcome.status = "no_pack"
                return outcome
            outcome.status = "counted"
            outcome.download_count = value
            if not isinstance(strategy, AtomicCounter):
                outcome.event_recorded = self.record_event(order_id, pack_id)
            return outcome
        return outcome

    def record_event(self, order_id: str, pack_id: str) -> bool:
        event = DownloadEvent(pin_pack_id=pack_id, order_id=order_id)
        try:
            self.store.insert(DOWNLOAD_EVENTS, [event.model_dump()])
        except StoreError as exc:
            logger.warning("download_event_insert_failed", pack_id=pack_id, order_id=order_id, error=exc.message)
            return False
        return True


@dataclass
class FulfillmentResult:
    order: Dict[str, Any]
    report: ReconciliationReport


def complete_order(store, req: CompleteOrderRequest) -> FulfillmentResult:
    """Mark the order completed, then reconcile download counts.

    Raises PipelineError when required ids are missing (400, no store call),
    when the order update fails or matches nothing, or when the order items
    cannot be read. In the last case the order stays completed.
    """
    if not req.orderId or not req.paypalOrderId:
        raise missing_field("Order ID and PayPal Order ID are required")

    changes = {
        "status": "completed",
        "paypal_order_id": req.paypalOrderId,
        "paypal_payer_id": req.paypalPayerId,
        "paypal_payment_id": req.paypalPaymentId,
        "customer_email": req.customerEmail,
        "customer_name": req.customerName,
        "completed_at": utcnow(),
    }
    # Fields PayPal did not report are left as stored.
    changes = {k: v for k, v in changes.items() if v is not None}
    try:
        order = store.update(ORDERS, {"id": req.orderId}, changes)
    except StoreError as exc:
        logger.error("order_update_failed", order_id=req.orderId, error=exc.message)
        raise PipelineError(ORDER_UPDATE_FAILED, "Failed to update order", step="order", detail=exc.message) from exc
    if order is None:
        logger.error("order_update_failed", order_id=req.orderId, error="order not found")
        raise PipelineError(ORDER_UPDATE_FAILED, "Failed to update order", step="order", detail="Order not found")

    try:
        items = store.select(ORDER_ITEMS, eq={"order_id": req.orderId}, fields=["pin_pack_id"])
    except StoreError as exc:
        logger.error("order_items_read_failed", order_id=req.orderId, error=exc.message)
        raise PipelineError(
            ORDER_ITEMS_READ_FAILED, "Failed to read order items", step="order_items", detail=exc.message
        ) from exc

    counter = DownloadCounter(store)
    report = ReconciliationReport(order_id=req.orderId)
    for item in items:
        pack_id = item.get("pin_pack_id")
        if not pack_id:
            report.items.append(ItemOutcome(pack_id="", status="failed", errors=["order item has no pack"]))
            continue
        report.items.append(counter.reconcile(req.orderId, pack_id))

    if report.failed:
        logger.warning("download_reconciliation_incomplete", **report.as_log_fields())
    else:
        logger.info("download_reconciliation", **report.as_log_fields())
    return FulfillmentResult(order=order, report=report)
