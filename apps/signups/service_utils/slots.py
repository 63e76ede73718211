"""Signup sheets, time slots and the join/leave time windows."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from ..exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SignupValidationError,
)
from ..records import Member, Sheet, SignupDocument, Slot, parse_timestamp
from .registry import get_course_or_404

logger = logging.getLogger(__name__)

SIGNUP_LEAD_TIME = timedelta(hours=1)
LEAVE_LEAD_TIME = timedelta(hours=2)


class SlotState:
    OPEN = "open"
    LOCKED = "locked"
    FULL = "full"
    PAST = "past"


@dataclass(frozen=True)
class SlotStatus:
    state: str
    can_join: bool
    can_leave: bool
    available_spots: int


def classify(slot: Slot, now: datetime) -> SlotStatus:
    """Derive a slot's state from the clock and its occupancy.

    Joining and leaving are gated independently: joining needs at least
    ``SIGNUP_LEAD_TIME`` before the start and a free seat, leaving needs
    ``LEAVE_LEAD_TIME``. Nothing here is ever persisted.
    """

    lead = slot.start_time - now
    can_join = lead >= SIGNUP_LEAD_TIME and not slot.is_full
    can_leave = lead >= LEAVE_LEAD_TIME

    if now >= slot.end_time:
        state = SlotState.PAST
    elif slot.is_full:
        state = SlotState.FULL
    elif lead < SIGNUP_LEAD_TIME:
        state = SlotState.LOCKED
    else:
        state = SlotState.OPEN

    return SlotStatus(
        state=state,
        can_join=can_join,
        can_leave=can_leave,
        available_spots=max(0, slot.max_members - slot.occupancy),
    )


# Sheets ---------------------------------------------------------------


def get_sheet_or_404(document: SignupDocument, sheet_id: int) -> Sheet:
    sheet = document.sheet(sheet_id)
    if sheet is None:
        raise NotFoundError("Signup sheet not found")
    return sheet


def _name_taken(document: SignupDocument, course_id: int, name: str, exclude_id=None) -> bool:
    lowered = name.lower()
    return any(
        s.course_id == course_id
        and s.id != exclude_id
        and s.assignment_name.lower() == lowered
        for s in document.sheets
    )


def list_sheets(document: SignupDocument, course_id: int) -> List[Sheet]:
    return [s for s in document.sheets if s.course_id == course_id]


def add_sheet(
    document: SignupDocument, course_id: int, *, assignment_name, description=""
) -> Sheet:
    assignment_name = (assignment_name or "").strip()
    if not assignment_name:
        raise SignupValidationError("assignmentName required")
    get_course_or_404(document, course_id)

    if _name_taken(document, course_id, assignment_name):
        raise ConflictError("Sheet already exists")

    sheet = Sheet(
        id=document.next_id("sheets"),
        course_id=course_id,
        assignment_name=assignment_name,
        description=(description or "").strip(),
    )
    document.sheets.append(sheet)
    logger.info("Signup sheet created", extra={"course_id": course_id, "sheet_id": sheet.id})
    return sheet


def update_sheet(
    document: SignupDocument, sheet_id: int, *, assignment_name=None, description=None
) -> Sheet:
    sheet = get_sheet_or_404(document, sheet_id)

    if assignment_name is not None:
        assignment_name = assignment_name.strip()
        if not assignment_name:
            raise SignupValidationError("assignmentName cannot be blank")
        if _name_taken(document, sheet.course_id, assignment_name, exclude_id=sheet.id):
            raise ConflictError("Sheet already exists")
        sheet.assignment_name = assignment_name
    if description is not None:
        sheet.description = description.strip()
    return sheet


def delete_sheet(document: SignupDocument, sheet_id: int) -> None:
    if any(slot.sheet_id == sheet_id for slot in document.slots):
        raise InvalidStateError("Cannot delete sheet with existing slots")
    sheet = get_sheet_or_404(document, sheet_id)
    document.sheets.remove(sheet)
    logger.info("Signup sheet deleted", extra={"sheet_id": sheet_id})


# Slots ----------------------------------------------------------------


def get_slot_or_404(document: SignupDocument, slot_id: int) -> Slot:
    slot = document.slot(slot_id)
    if slot is None:
        raise NotFoundError("Slot not found")
    return slot


def _require_time(value, field_name: str) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise SignupValidationError(f"{field_name} must be a valid timestamp")
    return parsed


def _require_capacity(value) -> int:
    if isinstance(value, bool):
        raise SignupValidationError("maxMembers must be a positive integer")
    try:
        capacity = int(str(value).strip())
    except ValueError:
        raise SignupValidationError("maxMembers must be a positive integer")
    if capacity < 1:
        raise SignupValidationError("maxMembers must be a positive integer")
    return capacity


def _check_interval(start: datetime, end: datetime) -> None:
    if end <= start:
        raise SignupValidationError("endTime must be after startTime")


def _find_overlap(
    document: SignupDocument, sheet_id: int, start: datetime, end: datetime, exclude_id=None
) -> Optional[Slot]:
    return next(
        (
            other
            for other in document.slots
            if other.sheet_id == sheet_id and other.id != exclude_id and other.overlaps(start, end)
        ),
        None,
    )


def list_slots(document: SignupDocument, sheet_id: int) -> List[Slot]:
    return document.sheet_slots(sheet_id)


def add_slot(
    document: SignupDocument, sheet_id: int, *, start_time, end_time, max_members
) -> Slot:
    if not start_time or not end_time or max_members in (None, ""):
        raise SignupValidationError("startTime, endTime, and maxMembers are required")
    get_sheet_or_404(document, sheet_id)

    start = _require_time(start_time, "startTime")
    end = _require_time(end_time, "endTime")
    _check_interval(start, end)
    capacity = _require_capacity(max_members)

    if _find_overlap(document, sheet_id, start, end) is not None:
        logger.warning("Rejected overlapping slot", extra={"sheet_id": sheet_id})
        raise ConflictError("Slot times overlap with existing slot")

    slot = Slot(
        id=document.next_id("slots"),
        sheet_id=sheet_id,
        start_time=start,
        end_time=end,
        max_members=capacity,
        signup_member_ids=[],
    )
    document.slots.append(slot)
    logger.info("Slot created", extra={"sheet_id": sheet_id, "slot_id": slot.id})
    return slot


def update_slot(
    document: SignupDocument, slot_id: int, *, start_time=None, end_time=None, max_members=None
) -> Slot:
    slot = get_slot_or_404(document, slot_id)

    capacity = None
    if max_members not in (None, ""):
        capacity = _require_capacity(max_members)
        if capacity < slot.occupancy:
            raise InvalidStateError(
                f"Cannot reduce maxMembers below current signup count ({slot.occupancy})"
            )

    if start_time or end_time:
        start = _require_time(start_time, "startTime") if start_time else slot.start_time
        end = _require_time(end_time, "endTime") if end_time else slot.end_time
        _check_interval(start, end)
        if _find_overlap(document, slot.sheet_id, start, end, exclude_id=slot.id) is not None:
            raise ConflictError("Updated slot times overlap with another slot")
        slot.start_time, slot.end_time = start, end

    if capacity is not None:
        slot.max_members = capacity
    logger.info("Slot updated", extra={"slot_id": slot_id})
    return slot


def delete_slot(document: SignupDocument, slot_id: int) -> None:
    slot = get_slot_or_404(document, slot_id)
    if slot.signup_member_ids:
        raise InvalidStateError("Cannot delete slot with existing signups")
    document.slots.remove(slot)
    logger.info("Slot deleted", extra={"slot_id": slot_id})


# Student signup -------------------------------------------------------


def _resolve_enrollment(document: SignupDocument, slot: Slot, username: str) -> Member:
    sheet = get_sheet_or_404(document, slot.sheet_id)
    member = document.find_member(sheet.course_id, username)
    if member is None:
        raise ForbiddenError("You are not enrolled in this course")
    return member


def signup(document: SignupDocument, slot_id: int, username: str, now: datetime) -> Slot:
    slot = get_slot_or_404(document, slot_id)
    member = _resolve_enrollment(document, slot, username)

    if member.id in slot.signup_member_ids:
        raise ConflictError("Already signed up for this slot")
    if slot.start_time - now < SIGNUP_LEAD_TIME:
        raise InvalidStateError("Cannot sign up for slots less than 1 hour away")
    if slot.is_full:
        raise ConflictError("Slot is full")

    slot.signup_member_ids.append(member.id)
    logger.info("Student signed up", extra={"slot_id": slot_id, "member_id": member.id})
    return slot


def leave(document: SignupDocument, slot_id: int, username: str, now: datetime) -> Slot:
    slot = get_slot_or_404(document, slot_id)
    member = _resolve_enrollment(document, slot, username)

    if member.id not in slot.signup_member_ids:
        raise InvalidStateError("Not signed up for this slot")
    if slot.start_time - now < LEAVE_LEAD_TIME:
        raise InvalidStateError("Cannot leave slots less than 2 hours away")

    slot.signup_member_ids.remove(member.id)
    logger.info("Student left slot", extra={"slot_id": slot_id, "member_id": member.id})
    return slot
