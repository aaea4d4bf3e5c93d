# Overview: Table and reservation status machines.

from __future__ import annotations

import logging

from ..enums import EntityType, ReservationStatus, TableStatus
from ..errors import InvalidTransition, NotFound, ValidationFailed
from ..events import UPDATED
from ..models import DiningTable, Reservation

logger = logging.getLogger(__name__)


RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.COMPLETED, ReservationStatus.CANCELLED}),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}


def get_table(store, table_id: int) -> DiningTable:
    table = store.get(DiningTable, table_id)
    if table is None:
        raise NotFound(f"Table {table_id} not found")
    return table


def get_reservation(store, reservation_id: int) -> Reservation:
    reservation = store.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFound(f"Reservation {reservation_id} not found")
    return reservation


def set_table_status(store, table_id: int, status: TableStatus | str) -> DiningTable:
    """Any status may move to any other (permissive)."""
    try:
        status = TableStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in TableStatus)
        raise ValidationFailed(f"status must be one of: {allowed}")

    table = get_table(store, table_id)
    if table.status != status:
        logger.info("Table %s: %s -> %s", table.id, table.status, status)
        table.status = status
        if status == TableStatus.AVAILABLE:
            table.current_order_id = None
        store.record_change(EntityType.TABLE, UPDATED, table)
        store.commit()
    return table


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in RESERVATION_TRANSITIONS.get(ReservationStatus(current), frozenset())


def transition_reservation(store, reservation_id: int, status: ReservationStatus | str) -> Reservation:
    try:
        target = ReservationStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in ReservationStatus)
        raise ValidationFailed(f"status must be one of: {allowed}")

    reservation = get_reservation(store, reservation_id)
    current = ReservationStatus(reservation.status)
    if not can_transition(current, target):
        raise InvalidTransition(f"Reservation {reservation_id} cannot move from {current} to {target}")

    reservation.status = target
    store.record_change(EntityType.RESERVATION, UPDATED, reservation)
    store.commit()
    logger.info("Reservation %s: %s -> %s", reservation.id, current, target)
    return reservation
