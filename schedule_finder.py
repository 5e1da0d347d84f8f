# schedule_finder.py
# Enumerates every conflict-free two-term schedule using backtracking DFS, then ranks the plans.

import logging
from dataclasses import dataclass
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple

from course_catalog import Catalog
from planner_config import DEFAULT_MAX_COURSES_PER_TERM, PlannerConfig
from schedule_models import Blockout, Placement, Plan, Section, SelectedCourse, Session, TermAssignment

__all__ = [
    "ScheduleError",
    "UnresolvableCourseError",
    "CapacityExceededError",
    "Classification",
    "TermCourse",
    "ScheduleResult",
    "session_conflicts",
    "section_conflicts",
    "blockout_conflicts",
    "blocked_sections",
    "classify_courses",
    "enumerate_assignments",
    "prepare_term_courses",
    "enumerate_section_combos",
    "assemble_plans",
    "generate_schedules",
]

logger = logging.getLogger(__name__)


class ScheduleError(Exception):
    pass


class UnresolvableCourseError(ScheduleError):
    def __init__(self, course_code: str):
        self.course_code = course_code
        super().__init__(f"Cannot build a schedule: no selected section of {course_code} is offered in any term")


class CapacityExceededError(ScheduleError):
    def __init__(self, term: str, count: int, capacity: int):
        self.term = term
        self.count = count
        self.capacity = capacity
        super().__init__(f"{count} course(s) must go in {term}, but only {capacity} fit")


class Classification(NamedTuple):
    only_term1: Tuple[SelectedCourse, ...]
    only_term2: Tuple[SelectedCourse, ...]
    both: Tuple[SelectedCourse, ...]


class TermCourse(NamedTuple):
    code: str
    title: str
    term: str
    sections: Tuple[Section, ...]


@dataclass(frozen=True)
class ScheduleResult:
    plans: Tuple[Plan, ...]
    terms: Tuple[str, ...]
    assignments_tried: int = 0
    combinations_found: int = 0
    incomplete_dropped: int = 0


def session_conflicts(a: Session, b: Session) -> bool:
    # Two sessions clash when they share an active day and their [start, end) ranges overlap.
    if not (a.has_times and b.has_times):
        return False
    if not any(x and y for x, y in zip(a.days, b.days)):
        return False
    return a.start < b.end and b.start < a.end


def section_conflicts(a: Sequence[Session], b: Sequence[Session]) -> bool:
    # Determines if two sections have any time overlap on any given day.
    return any(session_conflicts(sa, sb) for sa in a for sb in b)


def blockout_conflicts(session: Session, blockout: Blockout) -> bool:
    if not (session.has_times and blockout.has_times):
        return False
    if not session.is_active_on(blockout.day):
        return False
    return session.start < blockout.end and blockout.start < session.end


def blocked_sections(sessions: Sequence[Session], blockouts: Sequence[Blockout]) -> bool:
    return any(blockout_conflicts(s, b) for s in sessions for b in blockouts)


def _offered_labels(course: SelectedCourse, catalog: Catalog, term: Optional[str]) -> List[str]:
    if term is None or term not in course.terms:
        return []
    group = catalog.group(course.code, term)
    return [label for label in course.sections if label in group]


def classify_courses(selection: Sequence[SelectedCourse], catalog: Catalog,
                     term1: str, term2: Optional[str] = None) -> Classification:
    # Buckets each course by which term(s) hold at least one of its chosen sections.
    only1, only2, both = [], [], []
    for course in selection:
        in1 = bool(_offered_labels(course, catalog, term1))
        in2 = bool(_offered_labels(course, catalog, term2))
        if in1 and in2:
            both.append(course)
        elif in1:
            only1.append(course)
        elif in2:
            only2.append(course)
        else:
            raise UnresolvableCourseError(course.code)

    logger.info("Only %s: %s", term1, ", ".join(c.code for c in only1) or "-")
    if term2 is not None:
        logger.info("Only %s: %s", term2, ", ".join(c.code for c in only2) or "-")
    logger.info("Either term: %s", ", ".join(c.code for c in both) or "-")
    return Classification(tuple(only1), tuple(only2), tuple(both))


def enumerate_assignments(both: Sequence[SelectedCourse], term1_capacity: int,
                          term2_capacity: int) -> Iterator[TermAssignment]:
    # Every way to split the flexible courses between the two terms within capacity.
    if len(both) > term1_capacity + term2_capacity:
        raise CapacityExceededError("either term", len(both), term1_capacity + term2_capacity)

    courses = tuple(both)

    def dfs(i: int, in1: Tuple[SelectedCourse, ...], in2: Tuple[SelectedCourse, ...]) -> Iterator[TermAssignment]:
        if i == len(courses):
            yield TermAssignment(term1=in1, term2=in2)
            return
        course = courses[i]
        if len(in1) < term1_capacity:
            yield from dfs(i + 1, in1 + (course,), in2)
        if len(in2) < term2_capacity:
            yield from dfs(i + 1, in1, in2 + (course,))

    return dfs(0, (), ())


def prepare_term_courses(courses: Sequence[SelectedCourse], catalog: Catalog, term: str) -> List[TermCourse]:
    # Resolves the chosen sections that exist in this term; courses with none are skipped.
    prepared = []
    for course in courses:
        group = catalog.group(course.code, term)
        sections = tuple(group[label] for label in course.sections if label in group)
        if not sections:
            logger.warning("None of the selected sections of %s run in %s, skipping it there", course.code, term)
            continue
        prepared.append(TermCourse(course.code, course.title, term, sections))
    return prepared


def enumerate_section_combos(term_courses: Sequence[TermCourse],
                             blockouts: Sequence[Blockout] = ()) -> List[Tuple[Placement, ...]]:
    # One section per course, rejecting a branch as soon as it clashes with a chosen section or a blockout.
    courses = [c for c in term_courses if c.sections]
    combos: List[Tuple[Placement, ...]] = []

    def dfs(i: int, chosen: Tuple[Placement, ...]) -> None:
        if i == len(courses):
            combos.append(chosen)
            return

        course = courses[i]
        for sec in course.sections:
            if blocked_sections(sec.sessions, blockouts):
                continue
            if any(section_conflicts(sec.sessions, p.sessions) for p in chosen):
                continue
            placement = Placement(course.code, sec.label, course.term, sec.sessions, course.title)
            dfs(i + 1, chosen + (placement,))

    dfs(0, ())
    logger.debug("%d section combination(s) for %d course(s)", len(combos), len(courses))
    return combos


def assemble_plans(term1_combos: Sequence[Tuple[Placement, ...]], term2_combos: Sequence[Tuple[Placement, ...]],
                   selection: Sequence[SelectedCourse], terms: Sequence[str]) -> List[Plan]:
    # Joins per-term combinations into complete plans, most balanced first.
    plans = _join(term1_combos, term2_combos, selection, tuple(terms))
    return _rank(plans)


def _join(term1_combos, term2_combos, selection, terms) -> List[Plan]:
    wanted = {c.code for c in selection}
    plans = []
    for first in term1_combos:
        for second in term2_combos:
            placements = first + second
            codes = [p.course_code for p in placements]
            if len(codes) != len(wanted) or set(codes) != wanted:
                continue
            plans.append(Plan(placements, terms))
    return plans


def _rank(plans: Sequence[Plan]) -> List[Plan]:
    seen = set()
    unique = []
    for plan in plans:
        key = plan.signature()
        if key in seen:
            continue
        seen.add(key)
        unique.append(plan)
    return sorted(unique, key=lambda p: (p.variance, -p.day_offs))


def _term_pair(available_terms: Sequence[str]) -> Tuple[str, Optional[str]]:
    terms = [t for t in available_terms if t]
    if not terms:
        raise ValueError("At least one term is required")
    if len(terms) > 2:
        raise ValueError(f"At most two terms can be planned at once, got {len(terms)}")
    if len(terms) == 2 and terms[0] == terms[1]:
        return terms[0], None
    return terms[0], terms[1] if len(terms) == 2 else None


def generate_schedules(
    selection: Sequence[SelectedCourse],
    catalog: Catalog,
    available_terms: Sequence[str],
    blockouts: Sequence[Blockout] = (),
    max_courses_per_term: int = DEFAULT_MAX_COURSES_PER_TERM,
    config: Optional[PlannerConfig] = None,
) -> ScheduleResult:
    # Return every clash-free plan for the selection, ranked by balance then day-offs.
    config = config or PlannerConfig()
    cap = config.resolve_cap(max_courses_per_term)
    term1, term2 = _term_pair(available_terms)
    terms = (term1,) if term2 is None else (term1, term2)

    if not selection:
        return ScheduleResult(plans=(), terms=terms)

    logger.info("Generating schedules for %d course(s) over %s (cap %d)", len(selection), ", ".join(terms), cap)

    # Structural checks run before any search work.
    buckets = classify_courses(selection, catalog, term1, term2)
    for term, fixed in ((term1, buckets.only_term1), (term2, buckets.only_term2)):
        if len(fixed) > cap:
            logger.warning("%d course(s) can only go in %s, cap is %d", len(fixed), term, cap)
            raise CapacityExceededError(term, len(fixed), cap)
    cap1 = cap - len(buckets.only_term1)
    cap2 = cap - len(buckets.only_term2) if term2 is not None else 0
    assignments = enumerate_assignments(buckets.both, cap1, cap2)

    blocks1 = [b for b in blockouts if b.scope.applies_to(1)]
    blocks2 = [b for b in blockouts if b.scope.applies_to(2)]

    plans: List[Plan] = []
    tried = found = dropped = 0
    for assignment in assignments:
        tried += 1
        in1 = prepare_term_courses(buckets.only_term1 + assignment.term1, catalog, term1)
        in2 = prepare_term_courses(buckets.only_term2 + assignment.term2, catalog, term2) if term2 else []
        combos1 = enumerate_section_combos(in1, blocks1)
        combos2 = enumerate_section_combos(in2, blocks2)
        found += len(combos1) * len(combos2)
        joined = _join(combos1, combos2, selection, terms)
        dropped += len(combos1) * len(combos2) - len(joined)
        plans.extend(joined)

    ranked = _rank(plans)
    logger.info("Tried %d term assignment(s); %d plan(s) found, %d incomplete dropped",
                tried, len(ranked), dropped)
    if not ranked:
        logger.warning("No valid schedules found")
    return ScheduleResult(
        plans=tuple(ranked),
        terms=terms,
        assignments_tried=tried,
        combinations_found=found,
        incomplete_dropped=dropped,
    )
