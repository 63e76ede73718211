"""Grading mode: current-slot selection, rosters, grades and their audit row."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple, Union

from ..exceptions import InvalidStateError, NotFoundError, SignupValidationError
from ..records import (
    Audit,
    Grade,
    Member,
    SignupDocument,
    Slot,
    format_timestamp,
    parse_timestamp,
)
from .slots import get_slot_or_404

logger = logging.getLogger(__name__)

Number = Union[int, float]

DIRECTIONS = ("prev", "next")

_COMMENT_LINE = re.compile(r"^\[(?P<timestamp>[^\]]+)\] (?P<text>.*)$")


@dataclass
class RosterEntry:
    member: Member
    grade: Optional[Grade]


def build_roster(document: SignupDocument, slot: Slot) -> List[RosterEntry]:
    """Members signed up for ``slot`` with their grade for it (or ``None``)."""

    signed_up = set(slot.signup_member_ids)
    return [
        RosterEntry(member=member, grade=document.grade_for(slot.id, member.id))
        for member in document.members
        if member.id in signed_up
    ]


def select_current_slot(slots: List[Slot], now: datetime) -> Optional[Slot]:
    """Pick the slot to grade from ``slots`` ordered by start time.

    The running slot wins; otherwise the most recently finished one;
    otherwise (nothing has finished yet) the earliest.
    """

    current = None
    for slot in slots:
        if slot.start_time <= now <= slot.end_time:
            return slot
        if now > slot.end_time:
            current = slot
    if current is None and slots:
        current = slots[0]
    return current


def get_current_slot(
    document: SignupDocument, sheet_id: int, now: datetime
) -> Tuple[Slot, List[RosterEntry]]:
    slot = select_current_slot(document.sheet_slots(sheet_id), now)
    if slot is None:
        raise NotFoundError("No slots found")
    return slot, build_roster(document, slot)


def navigate(
    document: SignupDocument, slot_id: int, direction: str
) -> Tuple[Slot, List[RosterEntry]]:
    if direction not in DIRECTIONS:
        raise SignupValidationError("direction must be 'prev' or 'next'")
    current = get_slot_or_404(document, slot_id)
    siblings = document.sheet_slots(current.sheet_id)
    index = next(i for i, slot in enumerate(siblings) if slot.id == current.id)

    target_index = index - 1 if direction == "prev" else index + 1
    if target_index < 0 or target_index >= len(siblings):
        raise InvalidStateError("No adjacent slot available")

    target = siblings[target_index]
    return target, build_roster(document, target)


def _to_number(value, field_name: str, default: Optional[Number] = None) -> Number:
    if value is None or value == "":
        if default is None:
            raise SignupValidationError(f"{field_name} is required")
        return default
    if isinstance(value, bool):
        raise SignupValidationError(f"{field_name} must be a number")
    if isinstance(value, (int, float)):
        return value
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        raise SignupValidationError(f"{field_name} must be a number")
    if not parsed.is_finite():
        raise SignupValidationError(f"{field_name} must be a number")
    return int(parsed) if parsed == parsed.to_integral_value() else float(parsed)


def _summary(final_mark, base_mark, bonus, penalty) -> str:
    return f"Updated grade to {final_mark} (base: {base_mark}, bonus: {bonus}, penalty: {penalty})"


def add_or_update_grade(
    document: SignupDocument,
    slot_id: int,
    member_id: int,
    *,
    base_mark,
    bonus=None,
    penalty=None,
    comment=None,
    ta_username: str,
    now: datetime,
) -> Tuple[Grade, Audit]:
    """Create or edit the grade of ``member_id`` for ``slot_id``.

    ``final_mark`` is always ``base + bonus - penalty`` and is not clamped.
    The first write stores ``comment`` as given (it may be empty). Every
    later write must carry a comment, which is appended on its own
    ``[timestamp] text`` line. Each write replaces the grade's audit row.
    """

    if base_mark is None or base_mark == "":
        raise InvalidStateError("baseMark is required")
    base_mark = _to_number(base_mark, "baseMark")
    bonus = _to_number(bonus, "bonus", default=0)
    penalty = _to_number(penalty, "penalty", default=0)
    final_mark = base_mark + bonus - penalty

    get_slot_or_404(document, slot_id)
    if document.member(member_id) is None:
        raise NotFoundError("Member not found")

    comment = "" if comment is None else str(comment)
    timestamp = format_timestamp(now)
    grade = document.grade_for(slot_id, member_id)

    if grade is not None:
        if not comment.strip():
            raise InvalidStateError("Comment is required when modifying grade")
        entry = f"[{timestamp}] {comment.strip()}"
        grade.comment = f"{grade.comment}\n{entry}" if grade.comment else entry
        grade.base_mark = base_mark
        grade.bonus = bonus
        grade.penalty = penalty
        grade.final_mark = final_mark
        grade.ta_username = ta_username
        grade.graded_at = timestamp
    else:
        grade = Grade(
            id=document.next_id("grades"),
            slot_id=slot_id,
            member_id=member_id,
            base_mark=base_mark,
            bonus=bonus,
            penalty=penalty,
            final_mark=final_mark,
            comment=comment,
            ta_username=ta_username,
            graded_at=timestamp,
        )
        document.grades.append(grade)

    audit = Audit(
        id=document.next_id("audits"),
        grade_id=grade.id,
        changed_by=ta_username,
        changed_at=timestamp,
        summary=_summary(final_mark, base_mark, bonus, penalty),
    )
    # Only the latest change is kept per grade.
    document.audits = [a for a in document.audits if a.grade_id != grade.id]
    document.audits.append(audit)

    logger.info(
        "Grade saved",
        extra={"grade_id": grade.id, "slot_id": slot_id, "member_id": member_id, "by": ta_username},
    )
    return grade, audit


def get_audit(document: SignupDocument, grade_id: int) -> Audit:
    audit = next((a for a in document.audits if a.grade_id == grade_id), None)
    if audit is None:
        raise NotFoundError("No audit history found")
    return audit


def comment_entries(comment: str) -> List[dict]:
    """Split a stored comment trail into ``{"timestamp", "text"}`` entries.

    The first entry usually has no timestamp because the initial comment is
    stored verbatim. Lines that do not start a new timestamped entry belong
    to the entry before them.
    """

    entries: List[dict] = []
    for line in (comment or "").split("\n"):
        match = _COMMENT_LINE.match(line)
        if match and parse_timestamp(match.group("timestamp")) is not None:
            entries.append({"timestamp": match.group("timestamp"), "text": match.group("text")})
        elif entries:
            entries[-1]["text"] = f"{entries[-1]['text']}\n{line}"
        elif line:
            entries.append({"timestamp": None, "text": line})
    return entries
