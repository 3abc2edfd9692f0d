# Overview: Human-readable order number allocation with a bounded collision probe.

"""
Order numbers look like 20261019-483920-517:

    YYYYMMDD  date stamp (UTC)
    TTTTTT    last six digits of the millisecond clock
    RRR       three random digits

The time + random suffix makes collisions very unlikely. Each candidate is
still probed against existing orders and regenerated on a hit, a bounded
number of times. If every attempt collides the last candidate is returned
anyway: the unique constraint on orders.order_number is the authoritative
guarantee and a violation surfaces as OrderCreationError.
"""

from __future__ import annotations

import random
import time
from datetime import datetime
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import Order
from storefront.time_utils import date_stamp

DEFAULT_ATTEMPTS = 3

_rng = random.SystemRandom()


def order_number_exists(candidate: str) -> bool:
    return db.session.query(Order.id).filter_by(order_number=candidate).first() is not None


def _millis() -> int:
    return time.time_ns() // 1_000_000


def build_candidate(now: datetime | None, millis: int, rng) -> str:
    return f"{date_stamp(now)}-{millis % 1_000_000:06d}-{rng.randrange(1000):03d}"


def generate_order_number(
    *,
    exists: Callable[[str], bool] | None = None,
    now: datetime | None = None,
    clock: Callable[[], int] | None = None,
    rng=None,
    attempts: int | None = None,
) -> str:
    """
    Produce an order number that does not collide with an existing one.

    Args:
        exists: collision probe (defaults to an orders.order_number lookup)
        now: date used for the stamp (defaults to current UTC time)
        clock: millisecond clock (defaults to time.time_ns based)
        rng: object with randrange() (defaults to SystemRandom)
        attempts: probe budget (defaults to ORDER_NUMBER_ATTEMPTS config, 3)
    """
    exists = exists or order_number_exists
    clock = clock or _millis
    rng = rng or _rng
    if attempts is None:
        attempts = current_app.config.get("ORDER_NUMBER_ATTEMPTS", DEFAULT_ATTEMPTS)
    attempts = max(1, attempts)

    candidate = build_candidate(now, clock(), rng)
    for attempt in range(1, attempts + 1):
        if not exists(candidate):
            return candidate
        if attempt < attempts:
            candidate = build_candidate(now, clock(), rng)

    current_app.logger.warning(
        "Order number %s still collides after %d attempts; relying on unique constraint",
        candidate,
        attempts,
    )
    return candidate
