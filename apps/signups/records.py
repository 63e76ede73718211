"""Typed records stored in the signup document.

The document is a single JSON object with one array per collection. Keys on
disk are camelCase so documents written by earlier deployments load
unchanged; the records themselves use snake_case attributes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Optional

from django.utils import timezone
from django.utils.dateparse import parse_datetime

COLLECTIONS = ("courses", "members", "sheets", "slots", "grades", "audits")


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime) as an aware datetime."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value).strip())
        except ValueError:
            parsed = None
    if parsed is None:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Render a datetime the way the document stores it: UTC with milliseconds and ``Z``."""

    value = value.astimezone(dt_timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


@dataclass
class Course:
    id: int
    term: str
    code: str
    section: str
    name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Course":
        return cls(
            id=int(data["id"]),
            term=str(data.get("term", "")),
            code=str(data.get("code", "")),
            section=str(data.get("section", "")),
            name=str(data.get("name", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "term": self.term,
            "code": self.code,
            "section": self.section,
            "name": self.name,
        }

    def identity(self) -> tuple:
        return (self.term, self.code, self.section)


@dataclass
class Member:
    id: int
    course_id: int
    username: str
    first_name: str
    last_name: str
    password: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        return cls(
            id=int(data["id"]),
            course_id=int(data["courseId"]),
            username=str(data.get("username", "")),
            first_name=str(data.get("firstName") or ""),
            last_name=str(data.get("lastName") or ""),
            password=str(data.get("password") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "courseId": self.course_id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "password": self.password,
        }


@dataclass
class Sheet:
    id: int
    course_id: int
    assignment_name: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sheet":
        return cls(
            id=int(data["id"]),
            course_id=int(data["courseId"]),
            assignment_name=str(data.get("assignmentName", "")),
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "courseId": self.course_id,
            "assignmentName": self.assignment_name,
            "description": self.description,
        }


@dataclass
class Slot:
    id: int
    sheet_id: int
    start_time: datetime
    end_time: datetime
    max_members: int
    signup_member_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Slot":
        return cls(
            id=int(data["id"]),
            sheet_id=int(data["sheetId"]),
            start_time=parse_timestamp(data["startTime"]),
            end_time=parse_timestamp(data["endTime"]),
            max_members=int(data.get("maxMembers", 0)),
            signup_member_ids=[int(member_id) for member_id in data.get("signupMemberIds") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sheetId": self.sheet_id,
            "startTime": format_timestamp(self.start_time),
            "endTime": format_timestamp(self.end_time),
            "maxMembers": self.max_members,
            "signupMemberIds": list(self.signup_member_ids),
        }

    @property
    def occupancy(self) -> int:
        return len(self.signup_member_ids)

    @property
    def is_full(self) -> bool:
        return self.occupancy >= self.max_members

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Half-open intervals: touching boundaries do not overlap.
        return self.start_time < end and start < self.end_time


@dataclass
class Grade:
    id: int
    slot_id: int
    member_id: int
    base_mark: float
    bonus: float
    penalty: float
    final_mark: float
    comment: str
    ta_username: str
    graded_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Grade":
        return cls(
            id=int(data["id"]),
            slot_id=int(data["slotId"]),
            member_id=int(data["memberId"]),
            base_mark=data.get("baseMark", 0),
            bonus=data.get("bonus", 0),
            penalty=data.get("penalty", 0),
            final_mark=data.get("finalMark", 0),
            comment=str(data.get("comment") or ""),
            ta_username=str(data.get("taUsername") or ""),
            graded_at=str(data.get("gradedAt") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slotId": self.slot_id,
            "memberId": self.member_id,
            "baseMark": self.base_mark,
            "bonus": self.bonus,
            "penalty": self.penalty,
            "finalMark": self.final_mark,
            "comment": self.comment,
            "taUsername": self.ta_username,
            "gradedAt": self.graded_at,
        }


@dataclass
class Audit:
    id: int
    grade_id: int
    changed_by: str
    changed_at: str
    summary: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Audit":
        return cls(
            id=int(data["id"]),
            grade_id=int(data["gradeId"]),
            changed_by=str(data.get("changedBy") or ""),
            changed_at=str(data.get("changedAt") or ""),
            summary=str(data.get("summary") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gradeId": self.grade_id,
            "changedBy": self.changed_by,
            "changedAt": self.changed_at,
            "summary": self.summary,
        }


_RECORD_TYPES = {
    "courses": Course,
    "members": Member,
    "sheets": Sheet,
    "slots": Slot,
    "grades": Grade,
    "audits": Audit,
}


@dataclass
class SignupDocument:
    """In-memory view of the whole signup document."""

    courses: List[Course] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)
    sheets: List[Sheet] = field(default_factory=list)
    slots: List[Slot] = field(default_factory=list)
    grades: List[Grade] = field(default_factory=list)
    audits: List[Audit] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SignupDocument":
        data = data or {}
        return cls(
            **{
                name: [_RECORD_TYPES[name].from_dict(item) for item in data.get(name) or []]
                for name in COLLECTIONS
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: [record.to_dict() for record in getattr(self, name)]
            for name in COLLECTIONS
        }

    def next_id(self, collection: str) -> int:
        records = getattr(self, collection)
        if not records:
            return 1
        return max(record.id for record in records) + 1

    # Lookups -----------------------------------------------------------

    def course(self, course_id: int) -> Optional[Course]:
        return next((c for c in self.courses if c.id == course_id), None)

    def sheet(self, sheet_id: int) -> Optional[Sheet]:
        return next((s for s in self.sheets if s.id == sheet_id), None)

    def slot(self, slot_id: int) -> Optional[Slot]:
        return next((s for s in self.slots if s.id == slot_id), None)

    def member(self, member_id: int) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def grade(self, grade_id: int) -> Optional[Grade]:
        return next((g for g in self.grades if g.id == grade_id), None)

    def find_member(self, course_id: int, username: str) -> Optional[Member]:
        return next(
            (m for m in self.members if m.course_id == course_id and m.username == username),
            None,
        )

    def grade_for(self, slot_id: int, member_id: int) -> Optional[Grade]:
        return next(
            (g for g in self.grades if g.slot_id == slot_id and g.member_id == member_id),
            None,
        )

    def sheet_slots(self, sheet_id: int) -> List[Slot]:
        """Slots of a sheet ordered by start time."""

        return sorted(
            (s for s in self.slots if s.sheet_id == sheet_id),
            key=lambda s: s.start_time,
        )
