"""
Seat availability index.

Purpose:
- Answer "is seat S free on route R for date D?"
- Atomically turn a set of free seats into HELD claims, or claim none of them
- Release claims when bookings are cancelled

How exclusivity is enforced:
- Storage: seat_claims has UNIQUE(route_id, travel_date, seat_number, held_marker).
  Claiming is the INSERT itself; a unique violation is the conflict signal.
- Process: a per-(route_id, travel_date) asyncio.Lock (claim_scope) serializes
  claim + booking persistence + commit for callers sharing this process.
"""
import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InvalidSeatNumber, SeatConflict
from models.db_models import ClaimStatus, SeatClaim

logger = logging.getLogger(__name__)


def normalize_seat_numbers(seat_numbers: Iterable, capacity: int) -> List[str]:
    """
    Validate seat numbers against bus capacity and return canonical strings.

    Rejects non-numeric, out-of-range [1, capacity] and repeated seats.
    """
    normalized: List[str] = []
    invalid: List[str] = []
    for raw in seat_numbers:
        text = str(raw).strip()
        if not (text.isascii() and text.isdigit()) or not 1 <= int(text) <= capacity:
            invalid.append(text)
            continue
        normalized.append(str(int(text)))

    if invalid:
        raise InvalidSeatNumber(
            f"Invalid seat number(s) for this bus (capacity {capacity}): {', '.join(invalid)}",
            details={"seats": invalid, "capacity": capacity},
        )
    duplicates = sorted({s for s in normalized if normalized.count(s) > 1}, key=int)
    if duplicates:
        raise InvalidSeatNumber(
            f"Seat number(s) requested more than once: {', '.join(duplicates)}",
            details={"seats": duplicates},
        )
    return normalized


def _is_claim_violation(exc: IntegrityError) -> bool:
    # MySQL, Postgres and SQLite all name the table or the constraint in the message
    return "seat_claim" in str(exc.orig).lower()


class SeatAvailabilityIndex:
    """Seat claims per (route_id, travel_date). Stateless apart from the in-process locks."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Tuple[str, date], asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, route_id: str, travel_date: date) -> asyncio.Lock:
        key = (route_id, travel_date)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def claim_scope(self, route_id: str, travel_date: date) -> AsyncIterator[None]:
        """Critical section for everything that claims or releases seats on one route/date."""
        lock = self._lock_for(route_id, travel_date)
        async with lock:
            yield

    @asynccontextmanager
    async def check_and_claim(
        self,
        session: AsyncSession,
        route_id: str,
        travel_date: date,
        seat_numbers: Iterable[str],
        booking_ids: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[Set[str]]:
        """
        Claim every seat in `seat_numbers` or none of them.

        Opens a transaction on `session`, inserts HELD claims and yields the
        claimed set; whatever the body adds to the session (the bookings)
        commits together with the claims on exit. If any seat is already HELD
        the transaction rolls back and SeatConflict names the contested seats.

        `session` must not have a transaction in progress.
        """
        seats = list(seat_numbers)
        booking_ids = booking_ids or {}
        async with self.claim_scope(route_id, travel_date):
            try:
                async with session.begin():
                    session.add_all([
                        SeatClaim(
                            route_id=route_id,
                            travel_date=travel_date,
                            seat_number=seat,
                            booking_id=booking_ids.get(seat),
                            status=ClaimStatus.HELD.value,
                            held_marker=True,
                        )
                        for seat in seats
                    ])
                    await session.flush()
                    yield set(seats)
            except IntegrityError as exc:
                if not _is_claim_violation(exc):
                    raise
                held = await self.list_held(session, route_id, travel_date)
                contested = held.intersection(seats) or set(seats)
                logger.info(
                    "Seat conflict on route=%s date=%s requested=%s contested=%s",
                    route_id, travel_date, seats, sorted(contested),
                )
                raise SeatConflict(contested) from exc

        logger.info("Claimed seats %s on route=%s date=%s", seats, route_id, travel_date)

    async def release(
        self,
        session: AsyncSession,
        route_id: str,
        travel_date: date,
        seat_numbers: Iterable[str],
    ) -> int:
        """
        Mark HELD claims RELEASED. Idempotent: released or unknown seats are ignored.

        Runs inside the caller's transaction and returns the number of claims released.
        """
        seats = list(seat_numbers)
        if not seats:
            return 0
        result = await session.execute(
            update(SeatClaim)
            .where(SeatClaim.route_id == route_id)
            .where(SeatClaim.travel_date == travel_date)
            .where(SeatClaim.seat_number.in_(seats))
            .where(SeatClaim.status == ClaimStatus.HELD.value)
            .values(status=ClaimStatus.RELEASED.value, held_marker=None, released_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount or 0
        logger.info("Released %d/%d claims on route=%s date=%s", released, len(seats), route_id, travel_date)
        return released

    async def list_held(self, session: AsyncSession, route_id: str, travel_date: date) -> Set[str]:
        """Seat numbers currently HELD for the route/date."""
        result = await session.execute(
            select(SeatClaim.seat_number)
            .where(SeatClaim.route_id == route_id)
            .where(SeatClaim.travel_date == travel_date)
            .where(SeatClaim.status == ClaimStatus.HELD.value)
        )
        return set(result.scalars().all())
