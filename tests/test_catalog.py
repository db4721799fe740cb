"""Tests for the catalog creation pipeline."""

from __future__ import annotations

from typing import Any

import pytest

from catalog import create_pack
from database import PACK_PINS, PACKS, PINS
from errors import (
    LINK_INSERT_FAILED,
    MISSING_REQUIRED_FIELD,
    PACK_INSERT_FAILED,
    PIN_INSERT_FAILED,
    PipelineError,
)
from schemas import CreatePackRequest
from tests.fake_store import FakeStore


def _request(**overrides: Any) -> CreatePackRequest:
    body = {
        "email": "creator@example.com",
        "title": "Paris Highlights",
        "city": "Paris",
        "country": "France",
        "price": 9.99,
    }
    body.update(overrides)
    return CreatePackRequest.model_validate(body)


@pytest.mark.parametrize("count", [0, 1, 5])
def test_creates_pack_pins_and_links(store: FakeStore, count: int) -> None:
    pins = [{"title": f"Place {i}", "latitude": 1.0 + i, "longitude": 2.0} for i in range(count)]

    pack_id = create_pack(store, _request(pins=pins))

    packs = store.rows(PACKS)
    assert len(packs) == 1
    assert packs[0]["id"] == pack_id
    assert packs[0]["pin_count"] == count
    assert len(store.rows(PINS)) == count
    links = store.rows(PACK_PINS)
    assert len(links) == count
    assert [link["pin_id"] for link in links] == [pin["id"] for pin in store.rows(PINS)]
    assert all(link["pin_pack_id"] == pack_id for link in links)


def test_steps_run_in_order(store: FakeStore) -> None:
    create_pack(store, _request(pins=[{"title": "Louvre"}]))

    assert store.writes == [
        ("insert", PACKS),
        ("insert", PINS),
        ("insert", PACK_PINS),
        ("update", PACKS),
    ]


@pytest.mark.parametrize("email", [None, "", "   "])
def test_missing_email_fails_before_store(store: FakeStore, email: str | None) -> None:
    with pytest.raises(PipelineError) as excinfo:
        create_pack(store, _request(email=email))

    assert excinfo.value.code == MISSING_REQUIRED_FIELD
    assert excinfo.value.status_code == 400
    assert store.calls == []


def test_pack_insert_failure_creates_nothing_else(store: FakeStore) -> None:
    store.fail("insert", PACKS, "duplicate key")

    with pytest.raises(PipelineError) as excinfo:
        create_pack(store, _request(pins=[{"title": "Louvre"}]))

    assert excinfo.value.code == PACK_INSERT_FAILED
    assert excinfo.value.step == "pack"
    assert excinfo.value.message == "duplicate key"
    assert store.rows(PINS) == []
    assert store.rows(PACK_PINS) == []


def test_pin_insert_failure_leaves_pack_in_place(store: FakeStore) -> None:
    store.fail("insert", PINS)

    with pytest.raises(PipelineError) as excinfo:
        create_pack(store, _request(pins=[{"title": "Louvre"}, {"title": "Orsay"}]))

    assert excinfo.value.code == PIN_INSERT_FAILED
    assert excinfo.value.step == "pins"
    packs = store.rows(PACKS)
    assert len(packs) == 1
    # provisional count from the request, never reconciled
    assert packs[0]["pin_count"] == 2
    assert store.rows(PACK_PINS) == []
    assert ("delete", PACKS) not in store.calls


def test_link_insert_failure_keeps_pack_and_pins(store: FakeStore) -> None:
    store.fail("insert", PACK_PINS)

    with pytest.raises(PipelineError) as excinfo:
        create_pack(store, _request(pins=[{"title": "Louvre"}]))

    assert excinfo.value.code == LINK_INSERT_FAILED
    assert excinfo.value.step == "links"
    assert len(store.rows(PACKS)) == 1
    assert len(store.rows(PINS)) == 1
    assert not any(op == "delete" for op, _ in store.calls)


def test_pin_count_update_failure_still_succeeds(store: FakeStore) -> None:
    store.fail("update", PACKS)

    pack_id = create_pack(store, _request(pins=[{"title": "Louvre"}]))

    assert store.get(PACKS, pack_id)["pin_count"] == 1


def test_declared_pin_count_used_without_pins(store: FakeStore) -> None:
    pack_id = create_pack(store, _request(pin_count="7"))

    assert store.get(PACKS, pack_id)["pin_count"] == 7
    assert store.rows(PINS) == []
    assert ("insert", PINS) not in store.calls


def test_fields_are_sanitized_and_defaulted(store: FakeStore) -> None:
    pack_id = create_pack(
        store,
        _request(
            title="<b>Paris</b>",
            price=float("nan"),
            categories=["Food & Drink", "Nightlife", "Cultural", "Family"],
            pins=[{"latitude": "not a number", "longitude": "2.294", "photos": ["https://x/1.jpg", 5]}],
        ),
    )

    pack = store.get(PACKS, pack_id)
    assert pack["title"] == "bParis/b"
    assert pack["price"] == 0
    assert pack["categories"] == ["Food & Drink", "Nightlife", "Cultural"]
    assert pack["creator_id"] == "creator@example.com"
    assert pack["status"] == "pending"
    assert pack["download_count"] == 0

    pin = store.rows(PINS)[0]
    assert pin["title"] == "Imported Place"
    assert pin["description"] == "Amazing place to visit"
    assert pin["category"] == "other"
    assert pin["latitude"] == 0
    assert pin["longitude"] == 2.294
    assert pin["photos"] == ["https://x/1.jpg"]
    assert pin["place_id"] is None


def test_negative_price_is_clamped(store: FakeStore) -> None:
    pack_id = create_pack(store, _request(price=-5))

    assert store.get(PACKS, pack_id)["price"] == 0


def test_oversized_numbers_do_not_leave_a_partial_pack(store: FakeStore) -> None:
    req = _request(price=10**400, pins=[{"title": "Edge", "latitude": 10**400, "longitude": "1e999"}])

    pack_id = create_pack(store, req)

    assert store.get(PACKS, pack_id)["price"] == 0
    pin = store.rows(PINS)[0]
    assert (pin["latitude"], pin["longitude"]) == (0, 0)
    assert len(store.rows(PACK_PINS)) == 1
