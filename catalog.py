"""
Catalog creation: a pack, its pins and the pack-pin links.

The store has no cross-collection transaction, so the three inserts run in a
fixed order and nothing is rolled back. A failure after the pack insert
leaves the pack persisted with a stale ``pin_count``; callers see a 500 that
names the failed step.
"""

from typing import Any, Dict, List, Optional

from database import PACK_PINS, PACKS, PINS, StoreError
from errors import (
    LINK_INSERT_FAILED,
    PACK_INSERT_FAILED,
    PIN_INSERT_FAILED,
    PipelineError,
    missing_field,
)
from logging_config import StructuredLogger
from sanitize import (
    clean_email,
    finite_number,
    first_categories,
    parse_coordinate,
    parse_count,
    sanitize_input,
    string_list,
    text_or_default,
)
from schemas import CreatePackRequest, Pin, PinIn, PinPack, PinPackPin, utcnow

logger = StructuredLogger(__name__)


def _optional_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def build_pack(email: str, req: CreatePackRequest, pins: Optional[List[PinIn]]) -> PinPack:
    if pins is not None:
        pin_count = len(pins)
    else:
        pin_count = parse_count(req.pin_count)
    return PinPack(
        title=sanitize_input(req.title),
        description=sanitize_input(req.description),
        city=sanitize_input(req.city),
        country=sanitize_input(req.country),
        price=max(finite_number(req.price), 0),
        creator_id=email,
        pin_count=pin_count,
        categories=first_categories(req.categories),
        maps_list_reference=_optional_text(req.maps_list_reference),
        status=text_or_default(req.status, "pending"),
    )


def build_pin(pin: PinIn) -> Pin:
    now = utcnow()
    return Pin(
        title=text_or_default(pin.title, "Imported Place"),
        description=text_or_default(pin.description, "Amazing place to visit"),
        google_maps_url=sanitize_input(pin.google_maps_url),
        category=text_or_default(pin.category, "other"),
        latitude=parse_coordinate(pin.latitude),
        longitude=parse_coordinate(pin.longitude),
        place_id=_optional_text(pin.place_id),
        photos=string_list(pin.photos),
        created_at=now,
        updated_at=now,
    )


def create_pack(store, req: CreatePackRequest) -> str:
    """Run the creation pipeline and return the new pack id.

    Raises PipelineError for a missing email (400, before any store call) or
    for a failed pack, pin or link insert (500).
    """
    email = clean_email(req.email)
    if not email:
        raise missing_field("Missing email")

    # Every row is built before the first write, so coercion cannot fail midway.
    pins = req.pin_list()
    pack = build_pack(email, req, pins)
    pin_rows = [build_pin(p).model_dump() for p in pins or []]

    try:
        created = store.insert_one(PACKS, pack.model_dump())
    except StoreError as exc:
        logger.error("pack_insert_failed", creator=email, error=exc.message)
        raise PipelineError(PACK_INSERT_FAILED, exc.message, step="pack", detail=exc.message) from exc
    if not created:
        logger.error("pack_insert_failed", creator=email, error="no row returned")
        raise PipelineError(PACK_INSERT_FAILED, "Failed to create pack", step="pack")

    pack_id = created["id"]
    created_pins: List[Dict[str, Any]] = []

    if pin_rows:
        try:
            created_pins = store.insert(PINS, pin_rows)
        except StoreError as exc:
            logger.error("pin_insert_failed", pack_id=pack_id, pins=len(pin_rows), error=exc.message)
            raise PipelineError(PIN_INSERT_FAILED, exc.message, step="pins", detail=exc.message) from exc

        now = utcnow()
        links = [PinPackPin(pin_pack_id=pack_id, pin_id=p["id"], created_at=now).model_dump() for p in created_pins]
        try:
            store.insert(PACK_PINS, links)
        except StoreError as exc:
            logger.error("link_insert_failed", pack_id=pack_id, links=len(links), error=exc.message)
            raise PipelineError(LINK_INSERT_FAILED, exc.message, step="links", detail=exc.message) from exc

    final_count = len(created_pins) or pack.pin_count
    try:
        store.update(PACKS, {"id": pack_id}, {"pin_count": final_count})
    except StoreError as exc:
        # Final step; the pack and its pins are usable with the provisional count.
        logger.warning("pin_count_update_failed", pack_id=pack_id, pin_count=final_count, error=exc.message)

    logger.info("pack_created", pack_id=pack_id, creator=email, pins=len(created_pins))
    return pack_id
