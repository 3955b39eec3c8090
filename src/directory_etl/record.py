"""directory_etl.record

Turn a raw membership form answer list into a canonical MemberRecord.

Answer order (as asked on the form):
  0 name, 1 email, 2 phone, 3 chapter, 4 team, 5 grade, 6 parent emails
Trailing answers beyond index 6 are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from directory_etl.affiliation import AffiliationMatcher
from directory_etl.normalize import (
    normalize_email,
    normalize_name,
    normalize_phone,
    trim,
)

MIN_ANSWERS = 7

DEFAULT_GROUP = "Member"
UNSURE_GROUP = "Unsure"
LEADERSHIP_GROUP = "Chapter Head"
DEFAULT_GRADE = "Senior"

# Directory columns (1-indexed, matching the Members sheet)
NAME_COLUMN = 1
TITLE_COLUMN = 2
CHAPTER_COLUMN = 3
EMAIL_COLUMN = 4
PHONE_COLUMN = 5
TEAM_COLUMN = 6
GRADE_COLUMN = 7
GUARDIAN_COLUMN = 8
ROW_WIDTH = 8


class MalformedResponseError(ValueError):
    """Raised when a form response is too short to be a membership answer."""


@dataclass
class MemberRecord:
    name: str
    email: str
    phone: str
    affiliation: str
    group: str
    title: str
    grade: str
    guardian_emails: list[str] = field(default_factory=list)
    contact_group: str = DEFAULT_GROUP

    def row_values(self) -> list[str]:
        """Return the record as directory cell values, in column order."""
        return [
            self.name,
            self.title,
            self.affiliation,
            self.email,
            self.phone,
            self.group,
            self.grade,
            ", ".join(self.guardian_emails),
        ]


# ---------------------------------------------------------------------------
# Field derivations
# ---------------------------------------------------------------------------

def derive_group(raw: str | None) -> str:
    """Team used for directory placement.

    Blank means the member joined without picking a team ("Member"); "Unsure"
    is left empty so placement appends the row for manual sorting.
    """
    if not raw:
        return DEFAULT_GROUP
    if raw == UNSURE_GROUP:
        return ""
    return raw


def derive_contact_group(raw: str | None) -> str:
    """Team used for contact-store labels; never empty."""
    if not raw or raw == UNSURE_GROUP:
        return DEFAULT_GROUP
    return raw


def derive_title(group: str) -> str:
    return group if group in (DEFAULT_GROUP, LEADERSHIP_GROUP) else ""


def parse_guardian_emails(raw: str | None) -> list[str]:
    """Split a comma-separated list of parent emails; blank -> []."""
    if not trim(raw):
        return []
    emails = [normalize_email(part) for part in raw.split(",")]  # type: ignore[union-attr]
    return [e for e in emails if e]


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_record(
    answers: Sequence[str | None],
    vocabulary: Sequence[str],
    matcher: AffiliationMatcher | None = None,
) -> MemberRecord:
    """Build a canonical record from one form response.

    Unparseable phone numbers and unknown chapters become "" rather than
    failing the record; they are flagged later as missing data.

    Raises:
        MalformedResponseError: fewer than seven answers were supplied.
    """
    if len(answers) < MIN_ANSWERS:
        raise MalformedResponseError(
            f"expected at least {MIN_ANSWERS} answers, got {len(answers)}"
        )
    name, email, phone, chapter, team, grade, guardians = (
        (a or "") for a in answers[:MIN_ANSWERS]
    )
    if matcher is None:
        matcher = AffiliationMatcher(vocabulary)

    group = derive_group(team)
    return MemberRecord(
        name=normalize_name(name),
        email=normalize_email(email),
        phone=normalize_phone(phone),
        affiliation=matcher.match(chapter),
        group=group,
        title=derive_title(group),
        grade=grade or DEFAULT_GRADE,
        guardian_emails=parse_guardian_emails(guardians),
        contact_group=derive_contact_group(team),
    )
