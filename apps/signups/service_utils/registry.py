"""Course and member registry rules.

Functions take the loaded :class:`SignupDocument` and mutate it in place;
the caller owns the load/save cycle (see ``SignupService.session``).
"""
from __future__ import annotations

import csv
import io
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from django.contrib.auth.hashers import make_password

from ..exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SignupValidationError,
)
from ..records import Course, Member, SignupDocument

logger = logging.getLogger(__name__)

MemberRow = Tuple[str, str, str, str]


def _clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def get_course_or_404(document: SignupDocument, course_id: int) -> Course:
    course = document.course(course_id)
    if course is None:
        raise NotFoundError("Course not found")
    return course


def _has_sheets(document: SignupDocument, course_id: int) -> bool:
    return any(sheet.course_id == course_id for sheet in document.sheets)


def list_courses(document: SignupDocument) -> List[Course]:
    return list(document.courses)


def create_course(
    document: SignupDocument, *, term, code, section, name
) -> Course:
    term, code, section, name = (_clean(v) for v in (term, code, section, name))
    if not (term and code and section and name):
        raise SignupValidationError("Missing fields: term, code, section and name are required")

    if any(c.identity() == (term, code, section) for c in document.courses):
        raise ConflictError("Course already exists")

    course = Course(
        id=document.next_id("courses"),
        term=term,
        code=code,
        section=section,
        name=name,
    )
    document.courses.append(course)
    logger.info("Course created", extra={"course_id": course.id})
    return course


def update_course(
    document: SignupDocument,
    course_id: int,
    *,
    term=None,
    code=None,
    section=None,
    name=None,
) -> Course:
    """Apply a partial update.

    Once a course owns signup sheets its identity is frozen and only the
    name may change. Without sheets the new ``(term, code, section)`` must
    still be unique among the other courses.
    """

    course = get_course_or_404(document, course_id)
    patch = {
        "term": _clean(term) or None,
        "code": _clean(code) or None,
        "section": _clean(section) or None,
    }
    name = _clean(name) or None

    if _has_sheets(document, course_id):
        for field_name, value in patch.items():
            if value is not None and value != getattr(course, field_name):
                logger.warning(
                    "Rejected identity change on course with sheets",
                    extra={"course_id": course_id, "field": field_name},
                )
                raise InvalidStateError(
                    f"Cannot modify {field_name} - course has signup sheets. Only name is editable."
                )
        if name:
            course.name = name
        return course

    new_identity = tuple(
        patch[key] if patch[key] is not None else getattr(course, key)
        for key in ("term", "code", "section")
    )
    if any(c.id != course_id and c.identity() == new_identity for c in document.courses):
        raise ConflictError("Course already exists")

    course.term, course.code, course.section = new_identity
    if name:
        course.name = name
    logger.info("Course updated", extra={"course_id": course_id})
    return course


def delete_course(document: SignupDocument, course_id: int) -> int:
    if _has_sheets(document, course_id):
        raise InvalidStateError("Cannot delete course with existing signup sheets")
    course = get_course_or_404(document, course_id)
    document.courses.remove(course)
    logger.info("Course deleted", extra={"course_id": course_id})
    return course_id


def list_members(document: SignupDocument, course_id: int) -> List[Member]:
    return [m for m in document.members if m.course_id == course_id]


def _new_member(
    document: SignupDocument, course_id: int, username, first_name, last_name, password
) -> Member:
    return Member(
        id=document.next_id("members"),
        course_id=course_id,
        username=username,
        first_name=first_name,
        last_name=last_name,
        password=make_password(password),
    )


def add_member(
    document: SignupDocument,
    course_id: int,
    *,
    username,
    first_name,
    last_name,
    password,
) -> Member:
    username, first_name, last_name, password = (
        _clean(v) for v in (username, first_name, last_name, password)
    )
    if not (username and first_name and last_name and password):
        raise SignupValidationError(
            "Missing fields: username, firstName, lastName and password are required"
        )
    get_course_or_404(document, course_id)

    if document.find_member(course_id, username) is not None:
        raise ConflictError("Member already exists")

    member = _new_member(document, course_id, username, first_name, last_name, password)
    document.members.append(member)
    logger.info("Member added", extra={"course_id": course_id, "member_id": member.id})
    return member


def delete_member(document: SignupDocument, course_id: int, member_id: int) -> None:
    # Signup lists hold bare member ids, so this looks at every slot in
    # every course, not only the ones under ``course_id``.
    if any(member_id in slot.signup_member_ids for slot in document.slots):
        raise InvalidStateError("Cannot delete member with active signup")

    member = document.member(member_id)
    if member is None or member.course_id != course_id:
        raise NotFoundError("Member not found")
    document.members.remove(member)
    logger.info("Member deleted", extra={"course_id": course_id, "member_id": member_id})


def parse_member_csv(content: str) -> List[MemberRow]:
    """Parse ``lastName,firstName,username,password`` lines.

    Short lines are padded with blanks so the row-level skip rules in
    :func:`bulk_add_members` decide what to do with them.
    """

    rows: List[MemberRow] = []
    for raw in csv.reader(io.StringIO(content.strip())):
        if not raw:
            continue
        cells = [cell.strip() for cell in raw[:4]]
        cells += [""] * (4 - len(cells))
        rows.append(tuple(cells))
    return rows


def row_passwords(rows: Iterable[Sequence[str]]) -> Dict[str, str]:
    """Plaintext password per username, taken from the row that gets inserted.

    :func:`bulk_add_members` keeps the first row for a repeated username, so
    later rows never override the password collected here.
    """

    passwords: Dict[str, str] = {}
    for row in rows:
        _, _, username, password = (_clean(v) for v in (list(row) + [""] * 4)[:4])
        if username and password:
            passwords.setdefault(username, password)
    return passwords


def bulk_add_members(
    document: SignupDocument, course_id: int, rows: Iterable[Sequence[str]]
) -> List[Member]:
    """Insert every usable row and return the members actually added.

    Rows without a username or password, and rows whose username is already
    enrolled (including earlier rows of the same batch), are skipped.
    Partial success is not an error.
    """

    get_course_or_404(document, course_id)
    added: List[Member] = []
    for row in rows:
        last_name, first_name, username, password = (
            _clean(v) for v in (list(row) + [""] * 4)[:4]
        )
        if not username or not password:
            continue
        if document.find_member(course_id, username) is not None:
            continue
        member = _new_member(document, course_id, username, first_name, last_name, password)
        document.members.append(member)
        added.append(member)

    logger.info(
        "Bulk member import finished",
        extra={"course_id": course_id, "added": len(added)},
    )
    return added


def search_courses(document: SignupDocument, code: Optional[str]) -> List[dict]:
    """Public course lookup by code substring, with sheets and slot occupancy."""

    term = _clean(code).lower()
    if not term:
        raise SignupValidationError("Course code required")

    results = []
    for course in document.courses:
        if term not in course.code.lower():
            continue
        sheets = []
        for sheet in document.sheets:
            if sheet.course_id != course.id:
                continue
            slots = [
                {
                    "slot": slot,
                    "signupCount": slot.occupancy,
                    "capacity": slot.max_members,
                }
                for slot in document.sheet_slots(sheet.id)
            ]
            sheets.append({"sheet": sheet, "slots": slots})
        results.append({"course": course, "sheets": sheets})
    return results
