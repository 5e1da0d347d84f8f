import itertools

import pytest

from conftest import SEM1, SEM2, make_row
from course_catalog import normalize
from planner_config import PlannerConfig
from schedule_finder import (
    CapacityExceededError,
    TermCourse,
    UnresolvableCourseError,
    assemble_plans,
    blockout_conflicts,
    classify_courses,
    enumerate_assignments,
    enumerate_section_combos,
    generate_schedules,
    prepare_term_courses,
    section_conflicts,
    session_conflicts,
)
from schedule_models import Blockout, BlockoutScope, Placement, Session

TERMS = [SEM1, SEM2]
SLOTS = [("MON", "09:00", "10:00"), ("MON", "11:00", "12:00"), ("TUE", "09:00", "10:00"),
         ("TUE", "11:00", "12:00"), ("WED", "09:00", "10:00"), ("WED", "11:00", "12:00"),
         ("THU", "09:00", "10:00"), ("FRI", "09:00", "10:00")]


def session(days=(0,), start=540, end=600, code="X", section="1A", term=SEM1):
    flags = tuple(i in days for i in range(7))
    return Session(code, section, term, flags, start, end)


def flexible_rows(count):
    # Courses offered in both terms, each on its own free slot.
    rows = []
    for i in range(count):
        day, start, end = SLOTS[i]
        rows.append(make_row(f"FLEX100{i}", "1A", SEM1, (day,), start, end))
        rows.append(make_row(f"FLEX100{i}", "2A", SEM2, (day,), start, end))
    return rows


def select_all(catalog, codes=None):
    return [catalog.select(code) for code in (codes or [c.code for c in catalog.courses])]


@pytest.mark.parametrize("a, b, expected", [
    (session((0,), 540, 600), session((0,), 570, 630), True),
    (session((0,), 540, 600), session((0,), 600, 660), False),
    (session((0,), 540, 600), session((1,), 540, 600), False),
    (session((0, 2), 540, 600), session((2,), 500, 550), True),
    (session((0,), 540, 600), session((0,), None, 600), False),
    (session((0,), 540, 720), session((0,), 600, 610), True),
])
def test_session_conflicts_is_symmetric(a, b, expected):
    assert session_conflicts(a, b) is expected
    assert session_conflicts(b, a) is expected


def test_section_conflicts_checks_every_session_pair():
    a = [session((0,), 540, 600), session((3,), 840, 960)]
    b = [session((1,), 540, 600), session((3,), 900, 960)]
    assert section_conflicts(a, b)
    assert not section_conflicts(a[:1], b)


def test_blockout_conflicts():
    monday = Blockout(day=0, start=570, end=630)
    assert blockout_conflicts(session((0,), 540, 600), monday)
    assert not blockout_conflicts(session((1,), 540, 600), monday)
    assert not blockout_conflicts(session((0,), 630, 700), monday)
    assert not blockout_conflicts(session((0,), 540, 600), Blockout(day=0, start=None, end=630))


def test_classify_courses_buckets_and_keeps_order(catalog):
    selection = [
        catalog.select("MATH1013"),
        catalog.select("ENGG1310"),
        catalog.select("COMP1117"),
        catalog.select("COMP1117", ["1B"]),
    ]
    buckets = classify_courses(selection, catalog, SEM1, SEM2)

    assert [c.code for c in buckets.only_term1] == ["MATH1013", "COMP1117"]
    assert buckets.only_term1[1].sections == ("1B",)
    assert [c.code for c in buckets.only_term2] == ["ENGG1310"]
    assert [c.code for c in buckets.both] == ["COMP1117"]


def test_classify_courses_without_a_placeable_section(catalog):
    selection = [catalog.select("MATH1013")]
    with pytest.raises(UnresolvableCourseError) as excinfo:
        classify_courses(selection, catalog, SEM2, None)
    assert excinfo.value.course_code == "MATH1013"


def test_enumerate_assignments_is_depth_first_term1_first():
    a, b = "A", "B"
    got = [(x.term1, x.term2) for x in enumerate_assignments([a, b], 2, 2)]
    assert got == [((a, b), ()), ((a,), (b,)), ((b,), (a,)), ((), (a, b))]


def test_enumerate_assignments_prunes_full_terms():
    got = [(x.term1, x.term2) for x in enumerate_assignments(["A", "B", "C"], 1, 2)]
    assert got == [(("A",), ("B", "C")), (("B",), ("A", "C")), (("C",), ("A", "B"))]
    assert len({frozenset(t1) for t1, _ in got}) == len(got)


def test_enumerate_assignments_fails_before_recursing():
    with pytest.raises(CapacityExceededError) as excinfo:
        enumerate_assignments(["A", "B", "C"], 1, 1)
    assert excinfo.value.count == 3
    assert excinfo.value.capacity == 2


def test_enumerate_assignments_with_no_flexible_courses():
    assert [(x.term1, x.term2) for x in enumerate_assignments([], 0, 0)] == [((), ())]


def test_empty_term_yields_one_empty_combination():
    assert enumerate_section_combos([], []) == [()]


def test_section_combos_drop_clashing_sections(catalog):
    courses = prepare_term_courses(select_all(catalog, ["COMP1117", "MATH1013"]), catalog, SEM1)
    combos = enumerate_section_combos(courses)

    # COMP1117 1A (Mon 09:30-10:20) clashes with MATH1013 1A (Mon 10:00-11:00).
    assert [[(p.course_code, p.section) for p in combo] for combo in combos] == [
        [("COMP1117", "1B"), ("MATH1013", "1A")],
    ]


def test_prepare_term_courses_skips_courses_not_offered(catalog):
    courses = prepare_term_courses(select_all(catalog, ["MATH1013", "ENGG1310"]), catalog, SEM1)
    assert [c.code for c in courses] == ["MATH1013"]
    assert isinstance(courses[0], TermCourse)


def test_degenerate_single_course():
    catalog = normalize([make_row("SOLO1000", "1A", SEM1)])
    result = generate_schedules([catalog.select("SOLO1000")], catalog, TERMS)

    assert len(result.plans) == 1
    plan = result.plans[0]
    assert [(p.course_code, p.term) for p in plan.placements] == [("SOLO1000", SEM1)]
    assert plan.courses_in(SEM2) == []
    assert plan.term_counts == (1, 0)


def test_blockout_excludes_the_only_section():
    catalog = normalize([make_row("SOLO1000", "1A", SEM1, ("MON",), "09:00", "10:00")])
    blockout = Blockout(day=0, start=570, end=630, scope=BlockoutScope.parse(None))
    result = generate_schedules([catalog.select("SOLO1000")], catalog, TERMS, [blockout])
    assert result.plans == ()


def test_blockout_scope_only_hits_its_term():
    catalog = normalize([make_row("SOLO1000", "1A", SEM1, ("MON",), "09:00", "10:00")])
    selection = [catalog.select("SOLO1000")]
    term2_only = Blockout(day=0, start=570, end=630, scope=BlockoutScope.TERM2)
    term1_only = Blockout(day=0, start=570, end=630, scope=BlockoutScope.TERM1)

    assert len(generate_schedules(selection, catalog, TERMS, [term2_only]).plans) == 1
    assert generate_schedules(selection, catalog, TERMS, [term1_only]).plans == ()


def test_capacity_failure_before_search():
    rows = [make_row(f"FIX100{i}", "1A", SEM1, (day,), start, end)
            for i, (day, start, end) in enumerate(SLOTS[:7])]
    catalog = normalize(rows)
    with pytest.raises(CapacityExceededError) as excinfo:
        generate_schedules(select_all(catalog), catalog, TERMS, max_courses_per_term=6)
    assert (excinfo.value.term, excinfo.value.count, excinfo.value.capacity) == (SEM1, 7, 6)


def test_unresolvable_course_aborts_generation():
    catalog = normalize([make_row("LATE1000", "1A", "2026-27 Sem 1")])
    with pytest.raises(UnresolvableCourseError):
        generate_schedules([catalog.select("LATE1000")], catalog, TERMS)


def test_balanced_plans_rank_first():
    catalog = normalize(flexible_rows(6))
    result = generate_schedules(select_all(catalog), catalog, TERMS)
    counts = [tuple(sorted(p.term_counts)) for p in result.plans]

    assert counts[0] == (3, 3)
    assert max(i for i, c in enumerate(counts) if c == (3, 3)) < min(i for i, c in enumerate(counts) if c == (1, 5))
    variances = [p.variance for p in result.plans]
    assert variances == sorted(variances)
    assert len(result.plans) == 2 ** 6


def test_day_offs_break_ties():
    catalog = normalize([
        make_row("SOLO1000", "1B", SEM1, ("MON", "TUE"), "09:00", "10:00"),
        make_row("SOLO1000", "1A", SEM1, ("MON",), "09:00", "10:00"),
    ])
    result = generate_schedules([catalog.select("SOLO1000", ["1B", "1A"])], catalog, TERMS)

    assert [p.placements[0].section for p in result.plans] == ["1A", "1B"]
    assert [p.day_offs for p in result.plans] == [9, 8]


def test_flexible_course_is_placed_in_both_terms():
    catalog = normalize(flexible_rows(1))
    result = generate_schedules(select_all(catalog), catalog, TERMS)
    assert {p.placements[0].term for p in result.plans} == {SEM1, SEM2}


def test_plans_are_complete_conflict_free_and_within_capacity():
    rows = flexible_rows(4) + [
        make_row("FLEX1000", "1B", SEM1, ("TUE",), "09:30", "10:30"),
        make_row("MIXD2000", "1A", SEM1, ("MON",), "09:30", "10:30"),
        make_row("MIXD2000", "1B", SEM1, ("WED",), "13:00", "14:00"),
        make_row("LATE3000", "2A", SEM2, ("TUE",), "11:30", "12:30"),
        make_row("LATE3000", "2B", SEM2, ("FRI",), "11:30", "12:30"),
    ]
    catalog = normalize(rows)
    selection = select_all(catalog)
    blockouts = [Blockout(day=2, start=12 * 60 + 30, end=13 * 60 + 30, scope=BlockoutScope.BOTH)]
    result = generate_schedules(selection, catalog, TERMS, blockouts, max_courses_per_term=4)

    assert result.plans
    wanted = {c.code for c in selection}
    for plan in result.plans:
        assert sorted(plan.course_codes) == sorted(wanted)
        assert all(count <= 4 for count in plan.term_counts)
        for term in TERMS:
            chosen = plan.courses_in(term)
            for a, b in itertools.combinations(chosen, 2):
                assert not section_conflicts(a.sessions, b.sessions)
            for p in chosen:
                assert not any(blockout_conflicts(s, b) for s in p.sessions for b in blockouts)
    assert "1B" not in {p.section for plan in result.plans for p in plan.placements if p.course_code == "MIXD2000"}


def test_generation_is_idempotent():
    catalog = normalize(flexible_rows(4))
    selection = select_all(catalog)
    first = generate_schedules(selection, catalog, TERMS)
    second = generate_schedules(selection, catalog, TERMS)
    assert first.plans == second.plans


def test_sessions_without_times_never_clash():
    catalog = normalize([
        make_row("TBA01000", "1A", SEM1, ("MON",), "TBA", "TBA"),
        make_row("SOLO1000", "1A", SEM1, ("MON",), "09:00", "10:00"),
    ])
    result = generate_schedules(select_all(catalog), catalog, TERMS)
    assert len(result.plans) == 1


def test_assemble_plans_drops_incomplete_and_duplicate_plans(catalog):
    selection = select_all(catalog, ["MATH1013", "ENGG1310"])
    math = Placement("MATH1013", "1A", SEM1, catalog.section("MATH1013", SEM1, "1A").sessions)
    engg = Placement("ENGG1310", "1A", SEM2, catalog.section("ENGG1310", SEM2, "1A").sessions)

    plans = assemble_plans([(math,), (math,)], [(engg,), ()], selection, TERMS)
    assert len(plans) == 1
    assert plans[0].term_counts == (1, 1)


def test_overload_cap_rules():
    catalog = normalize(flexible_rows(2))
    selection = select_all(catalog)

    with pytest.raises(ValueError):
        generate_schedules(selection, catalog, TERMS, max_courses_per_term=8)
    with pytest.raises(ValueError):
        generate_schedules(selection, catalog, TERMS, max_courses_per_term=12,
                           config=PlannerConfig(allow_overload=True))
    result = generate_schedules(selection, catalog, TERMS, max_courses_per_term=8,
                                config=PlannerConfig(allow_overload=True))
    assert len(result.plans) == 4


def test_term_list_limits():
    catalog = normalize(flexible_rows(1))
    with pytest.raises(ValueError):
        generate_schedules(select_all(catalog), catalog, [])
    with pytest.raises(ValueError):
        generate_schedules(select_all(catalog), catalog, TERMS + ["2026-27 Sem 1"])


def test_single_term_catalog():
    catalog = normalize(flexible_rows(2))
    result = generate_schedules(select_all(catalog), catalog, [SEM2])
    assert result.terms == (SEM2,)
    assert len(result.plans) == 1
    assert result.plans[0].term_counts == (2,)
