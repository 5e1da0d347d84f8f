# schedule_models.py
# Immutable value types shared by the catalog normalizer, the schedule engine and the API.

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

__all__ = [
    "DAY_KEYS",
    "DAY_LABELS",
    "WEEKDAY_COUNT",
    "day_index",
    "Session",
    "Section",
    "Course",
    "SelectedCourse",
    "BlockoutScope",
    "Blockout",
    "Placement",
    "TermAssignment",
    "Plan",
]

DAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
DAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
WEEKDAY_COUNT = 5  # Mon-Fri, the days counted as day-offs.


def day_index(value: Any) -> int:
    # Accepts 0-6 or a day name ("mon", "Monday", "MON") and returns 0 for Monday.
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value < len(DAY_KEYS):
            return value
        raise ValueError(f"Day index out of range: {value}")
    key = str(value or "").strip().lower()[:3]
    if key not in DAY_KEYS:
        raise ValueError(f"Unknown day: {value!r}")
    return DAY_KEYS.index(key)


def _minutes_to_text(minutes: Optional[int]) -> str:
    if minutes is None:
        return ""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class Session:
    course_code: str
    section: str
    term: str
    days: Tuple[bool, ...]  # One flag per day, Monday first.
    start: Optional[int]  # Minute of day, None when unparseable.
    end: Optional[int]
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    venue: str = ""
    instructor: str = ""

    @property
    def has_times(self) -> bool:
        return self.start is not None and self.end is not None

    @property
    def active_days(self) -> Tuple[int, ...]:
        return tuple(i for i, active in enumerate(self.days) if active)

    def is_active_on(self, day: int) -> bool:
        return 0 <= day < len(self.days) and self.days[day]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days": [DAY_KEYS[i] for i in self.active_days],
            "startTime": _minutes_to_text(self.start),
            "endTime": _minutes_to_text(self.end),
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "venue": self.venue,
            "instructor": self.instructor,
        }


@dataclass(frozen=True)
class Section:
    course_code: str
    term: str
    label: str
    sessions: Tuple[Session, ...] = ()


@dataclass(frozen=True)
class Course:
    code: str
    title: str
    department: str
    terms: Tuple[str, ...]
    sections: Tuple[str, ...]

    @property
    def section_count(self) -> int:
        return len(self.sections)


@dataclass(frozen=True)
class SelectedCourse:
    code: str
    sections: Tuple[str, ...]
    terms: Tuple[str, ...]
    title: str = ""


class BlockoutScope(Enum):
    BOTH = "both"
    TERM1 = "sem1"
    TERM2 = "sem2"

    @classmethod
    def parse(cls, value: Any) -> "BlockoutScope":
        # Missing or unrecognised scopes apply to both terms.
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace(" ", "")
        aliases = {"sem1": cls.TERM1, "term1": cls.TERM1, "1": cls.TERM1,
                   "sem2": cls.TERM2, "term2": cls.TERM2, "2": cls.TERM2}
        return aliases.get(key, cls.BOTH)

    def applies_to(self, slot: int) -> bool:
        # slot is 1 for the first term, 2 for the second.
        if self is BlockoutScope.BOTH:
            return True
        return (self is BlockoutScope.TERM1) == (slot == 1)


@dataclass(frozen=True)
class Blockout:
    day: int
    start: Optional[int]
    end: Optional[int]
    name: str = "Blockout"
    scope: BlockoutScope = BlockoutScope.BOTH
    id: str = ""

    @property
    def has_times(self) -> bool:
        return self.start is not None and self.end is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "day": DAY_KEYS[self.day],
            "startTime": _minutes_to_text(self.start),
            "endTime": _minutes_to_text(self.end),
            "applyTo": self.scope.value,
        }


@dataclass(frozen=True)
class Placement:
    course_code: str
    section: str
    term: str
    sessions: Tuple[Session, ...]
    course_title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "courseCode": self.course_code,
            "courseTitle": self.course_title,
            "section": self.section,
            "term": self.term,
            "sessions": [s.to_dict() for s in self.sessions],
        }


@dataclass(frozen=True)
class TermAssignment:
    term1: Tuple[SelectedCourse, ...]
    term2: Tuple[SelectedCourse, ...]


@dataclass(frozen=True)
class Plan:
    placements: Tuple[Placement, ...]
    terms: Tuple[str, ...]  # The one or two terms this plan was built for.
    term_counts: Tuple[int, ...] = field(init=False)

    def __post_init__(self):
        counts = tuple(sum(1 for p in self.placements if p.term == t) for t in self.terms)
        object.__setattr__(self, "term_counts", counts)

    @property
    def course_codes(self) -> List[str]:
        return [p.course_code for p in self.placements]

    def courses_in(self, term: str) -> List[Placement]:
        return [p for p in self.placements if p.term == term]

    @property
    def variance(self) -> float:
        # Population variance of per-term course counts; lower is more balanced.
        if not self.term_counts:
            return 0.0
        mean = sum(self.term_counts) / len(self.term_counts)
        return sum((c - mean) ** 2 for c in self.term_counts) / len(self.term_counts)

    def day_offs_in(self, term: str) -> int:
        busy = set()
        for p in self.courses_in(term):
            for s in p.sessions:
                busy.update(d for d in s.active_days if d < WEEKDAY_COUNT)
        return WEEKDAY_COUNT - len(busy)

    @property
    def day_offs(self) -> int:
        return sum(self.day_offs_in(t) for t in self.terms)

    def signature(self) -> Tuple[Tuple[str, str, str], ...]:
        return tuple(sorted((p.course_code, p.term, p.section) for p in self.placements))

    def date_range(self) -> Tuple[Optional[date], Optional[date]]:
        # Earliest start date and latest end date over all sessions that carry both times.
        starts = [s.start_date for p in self.placements for s in p.sessions if s.has_times and s.start_date]
        ends = [s.end_date for p in self.placements for s in p.sessions if s.has_times and s.end_date]
        return (min(starts) if starts else None, max(ends) if ends else None)

    def to_dict(self) -> Dict[str, Any]:
        first, last = self.date_range()
        return {
            "courses": [p.to_dict() for p in self.placements],
            "termCounts": dict(zip(self.terms, self.term_counts)),
            "dayOffs": self.day_offs,
            "startDate": first.isoformat() if first else None,
            "endDate": last.isoformat() if last else None,
        }
