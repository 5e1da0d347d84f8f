# course_catalog.py
# Normalizes raw timetable rows into a two-level (course, term) -> section lookup.

import hashlib
import json
import logging
from collections import OrderedDict
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from planner_config import FULL_YEAR_SUFFIX, SUMMER_MARKERS, UNDERGRAD_CAREERS
from schedule_models import DAY_KEYS, DAY_LABELS, Course, Section, SelectedCourse, Session

__all__ = [
    "Catalog",
    "normalize",
    "parse_minutes",
    "parse_date",
    "display_instructor",
    "class_time_summary",
    "hash_rows",
]

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d/%m/%Y", "%Y-%m-%d %H:%M:%S")
DAY_COLUMNS = tuple(k.upper() for k in DAY_KEYS)


class Catalog:
    # Read-only lookup built once per data load.

    def __init__(self, groups: Dict[Tuple[str, str], Dict[str, Section]],
                 courses: List[Course], terms: List[str], total_sessions: int = 0):
        self._groups = groups
        self._courses = {c.code: c for c in courses}
        self.courses = sorted(courses, key=lambda c: c.code)
        self.terms = list(terms)
        self.total_sessions = total_sessions

    def __contains__(self, code: str) -> bool:
        return code in self._courses

    def __len__(self) -> int:
        return len(self._courses)

    def course(self, code: str) -> Course:
        try:
            return self._courses[code]
        except KeyError:
            raise KeyError(f"Unknown course: {code}") from None

    def group(self, code: str, term: str) -> Mapping[str, Section]:
        # Sections of a course in one term; empty when the course is not offered then.
        return self._groups.get((code, term), {})

    def section(self, code: str, term: str, label: str) -> Optional[Section]:
        return self.group(code, term).get(label)

    def select(self, code: str, sections: Optional[Iterable[str]] = None) -> SelectedCourse:
        # Builds a validated selection entry; all sections when none are given.
        course = self.course(code)
        labels = tuple(dict.fromkeys(sections)) if sections is not None else course.sections
        if not labels:
            raise ValueError(f"{code}: at least one section must be selected")
        unknown = [s for s in labels if s not in course.sections]
        if unknown:
            raise ValueError(f"{code}: unknown section(s) {', '.join(unknown)}")
        return SelectedCourse(code=code, sections=labels, terms=course.terms, title=course.title)


def _field(row: Mapping[str, Any], name: str) -> Any:
    # Source sheets sometimes carry a leading space in their headers.
    value = row.get(name)
    if value is None or value == "":
        value = row.get(" " + name)
    return value


def _text(row: Mapping[str, Any], name: str) -> str:
    value = _field(row, name)
    return "" if value is None else str(value).strip()


def parse_minutes(value: Any) -> Optional[int]:
    # Converts a time-of-day value or an "HH:MM[:SS]" string to minutes after midnight.
    if value is None:
        return None
    if isinstance(value, (datetime, time)):
        return value.hour * 60 + value.minute
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    if text:
        logger.debug("Unparseable date %r", text)
    return None


def display_instructor(raw: Any) -> str:
    # "CHAN, Tai Man" -> "Tai Man CHAN"
    text = str(raw or "").strip()
    if "," not in text:
        return text
    surname, given = text.split(",", 1)
    return " ".join(part for part in (given.strip(), surname.strip()) if part)


def _is_active(value: Any) -> bool:
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return value is not None and str(value).strip() != ""


def _is_summer(term: str) -> bool:
    lowered = term.lower()
    return any(marker in lowered for marker in SUMMER_MARKERS)


def _keep_row(row: Mapping[str, Any]) -> bool:
    if _text(row, "ACAD_CAREER") not in UNDERGRAD_CAREERS:
        return False
    if _is_summer(_text(row, "TERM")):
        return False
    if _text(row, "COURSE CODE").endswith(FULL_YEAR_SUFFIX):
        return False
    return True


def _parse_session(row: Mapping[str, Any], code: str, term: str, label: str) -> Session:
    start = parse_minutes(_field(row, "START TIME"))
    end = parse_minutes(_field(row, "END TIME"))
    if start is None or end is None:
        logger.debug("Session %s-%s (%s) has no usable time range", code, label, term)
    return Session(
        course_code=code,
        section=label,
        term=term,
        days=tuple(_is_active(_field(row, col)) for col in DAY_COLUMNS),
        start=start,
        end=end,
        start_date=parse_date(_field(row, "START DATE")),
        end_date=parse_date(_field(row, "END DATE")),
        venue=_text(row, "VENUE"),
        instructor=display_instructor(_field(row, "INSTRUCTOR")),
    )


def normalize(rows: Sequence[Mapping[str, Any]]) -> Catalog:
    # Filters, groups and consolidates raw timetable rows into a Catalog.
    logger.info("Normalizing %d timetable rows", len(rows))

    sessions: "OrderedDict[Tuple[str, str], OrderedDict[str, List[Session]]]" = OrderedDict()
    titles: Dict[str, Tuple[str, str]] = {}
    terms = set()
    kept = 0

    for row in rows:
        if not _keep_row(row):
            continue
        code = _text(row, "COURSE CODE")
        if not code:
            continue  # Cannot be grouped without a course code.
        term = _text(row, "TERM")
        label = _text(row, "CLASS SECTION")
        kept += 1
        terms.add(term)
        titles.setdefault(code, (_text(row, "COURSE TITLE"), _text(row, "OFFER DEPT")))
        group = sessions.setdefault((code, term), OrderedDict())
        group.setdefault(label, []).append(_parse_session(row, code, term, label))

    groups: Dict[Tuple[str, str], Dict[str, Section]] = {}
    merged: "OrderedDict[str, Tuple[List[str], List[str]]]" = OrderedDict()
    for (code, term), by_label in sessions.items():
        groups[(code, term)] = {
            label: Section(course_code=code, term=term, label=label, sessions=tuple(items))
            for label, items in by_label.items()
        }
        course_terms, labels = merged.setdefault(code, ([], []))
        if term not in course_terms:
            course_terms.append(term)
        labels.extend(label for label in by_label if label not in labels)

    courses = [
        Course(code=code, title=titles[code][0], department=titles[code][1],
               terms=tuple(course_terms), sections=tuple(labels))
        for code, (course_terms, labels) in merged.items()
    ]

    logger.info("Kept %d rows across %d courses in %d terms", kept, len(courses), len(terms))
    return Catalog(groups, courses, sorted(terms), total_sessions=kept)


def class_time_summary(sessions: Iterable[Session]) -> str:
    # Weekly meeting pattern such as "Mon 09:30-10:20, Wed 09:30-10:20".
    slots = sorted({
        (day, s.start, s.end)
        for s in sessions if s.has_times
        for day in s.active_days
    })
    return ", ".join(
        f"{DAY_LABELS[day]} {start // 60:02d}:{start % 60:02d}-{end // 60:02d}:{end % 60:02d}"
        for day, start, end in slots
    )


def hash_rows(rows: Sequence[Mapping[str, Any]]) -> str:
    # Stable digest of the raw rows, insensitive to key order within a row.
    payload = json.dumps([dict(row) for row in rows], sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
