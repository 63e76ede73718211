from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..records import Course, Grade, Member, Sheet, SignupDocument, Slot
from .slots import SIGNUP_LEAD_TIME


@dataclass
class SignupView:
    slot: Slot
    sheet: Optional[Sheet]
    course: Optional[Course]
    member: Optional[Member]
    grade: Optional[Grade]


@dataclass
class AvailableSlotView:
    slot: Slot
    sheet: Optional[Sheet]
    course: Optional[Course]
    available_spots: int


def _memberships(document: SignupDocument, username: str) -> List[Member]:
    return [m for m in document.members if m.username == username]


def my_signups(document: SignupDocument, username: str) -> List[SignupView]:
    """Every slot ``username`` is signed up for, across all of their courses."""

    member_ids = {m.id for m in _memberships(document, username)}
    views = []
    for slot in document.slots:
        member_id = next((i for i in slot.signup_member_ids if i in member_ids), None)
        if member_id is None:
            continue
        sheet = document.sheet(slot.sheet_id)
        course = document.course(sheet.course_id) if sheet else None
        views.append(
            SignupView(
                slot=slot,
                sheet=sheet,
                course=course,
                member=document.member(member_id),
                grade=document.grade_for(slot.id, member_id),
            )
        )
    return views


def available_slots(
    document: SignupDocument, username: str, now: datetime
) -> List[AvailableSlotView]:
    """Slots in the user's courses that still accept signups."""

    course_ids = {m.course_id for m in _memberships(document, username)}
    sheets = {s.id: s for s in document.sheets if s.course_id in course_ids}
    earliest_start = now + SIGNUP_LEAD_TIME

    views = []
    for slot in document.slots:
        sheet = sheets.get(slot.sheet_id)
        if sheet is None:
            continue
        if slot.start_time < earliest_start or slot.is_full:
            continue
        views.append(
            AvailableSlotView(
                slot=slot,
                sheet=sheet,
                course=document.course(sheet.course_id),
                available_spots=slot.max_members - slot.occupancy,
            )
        )
    return views
