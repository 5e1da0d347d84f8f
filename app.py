# app.py
# Provides a minimal Flask-based REST API around the schedule engine.

import json
import logging
import os
from typing import Any, Dict, List, Sequence

from flask import Flask, jsonify, request

from course_catalog import Catalog, class_time_summary, hash_rows, normalize, parse_minutes
from planner_config import PlannerConfig
from schedule_finder import (
    CapacityExceededError,
    UnresolvableCourseError,
    blocked_sections,
    generate_schedules,
    section_conflicts,
)
from schedule_models import Blockout, BlockoutScope, SelectedCourse, day_index

app = Flask(__name__)
logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
CATALOG_FILE = os.environ.get("PLANNER_CATALOG_FILE", os.path.join(BASE_DIR, "timetable.json"))
CONFIG = PlannerConfig.from_env()

# In-memory state for the loaded timetable and the carts saved against it.
STATE: Dict[str, Any] = {"catalog": Catalog({}, [], []), "hash": None}
CARTS: Dict[str, Dict[str, Any]] = {}


def install_catalog(rows: Sequence[Dict[str, Any]]) -> Catalog:
    # Normalizes raw rows and makes them the active catalog.
    catalog = normalize(rows)
    STATE["catalog"] = catalog
    STATE["hash"] = hash_rows(rows)
    return catalog


def load_catalog(path: str = CATALOG_FILE) -> Catalog:
    # Loads pre-parsed timetable rows from a JSON file.
    with open(path, encoding="utf-8") as f:
        rows = json.load(f)
    if not isinstance(rows, list):
        raise ValueError(f"{path} must contain a list of rows")
    return install_catalog(rows)


@app.get("/api/courses")
def api_courses():
    # Returns the catalog's courses with per-term section meeting patterns.
    catalog: Catalog = STATE["catalog"]
    courses = []
    for course in catalog.courses:
        sections = {
            term: {label: class_time_summary(sec.sessions) for label, sec in catalog.group(course.code, term).items()}
            for term in course.terms
        }
        courses.append({
            "courseCode": course.code,
            "courseTitle": course.title,
            "offerDept": course.department,
            "terms": list(course.terms),
            "sections": list(course.sections),
            "sectionCount": course.section_count,
            "classTimes": sections,
        })
    return jsonify({"courses": courses, "availableTerms": catalog.terms, "dataHash": STATE["hash"]})


@app.post("/api/catalog")
def api_catalog():
    # Replaces the active catalog with rows produced by the spreadsheet parser.
    body = request.get_json(silent=True) or {}
    rows = body.get("rows")
    if not (isinstance(rows, list) and all(isinstance(r, dict) for r in rows)):
        return jsonify({"error": "rows must be a list of objects"}), 400

    catalog = install_catalog(rows)
    return jsonify({
        "totalCourses": len(catalog),
        "totalSessions": catalog.total_sessions,
        "availableTerms": catalog.terms,
        "dataHash": STATE["hash"],
    })


def parse_selection(catalog: Catalog, entries: Any) -> List[SelectedCourse]:
    if not (isinstance(entries, list) and entries):
        raise ValueError("selection must be a non-empty list")
    if len(entries) > CONFIG.max_selected_courses:
        raise ValueError(f"Please select at most {CONFIG.max_selected_courses} courses")

    selection = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("courseCode"):
            raise ValueError("each selection entry needs a courseCode")
        code = str(entry["courseCode"])
        if code in seen:
            raise ValueError(f"{code} is selected more than once")
        seen.add(code)
        sections = entry.get("sections")
        if sections is not None and not isinstance(sections, list):
            raise ValueError(f"{entry['courseCode']}: sections must be a list")
        selection.append(catalog.select(code, sections))
    return selection


def parse_blockouts(entries: Any) -> List[Blockout]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ValueError("blockouts must be a list")

    blockouts = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError("each blockout must be an object")
        start = parse_minutes(entry.get("startTime"))
        end = parse_minutes(entry.get("endTime"))
        if start is None or end is None:
            raise ValueError(f"blockout {i + 1}: times must be HH:MM")
        if start >= end:
            raise ValueError(f"blockout {i + 1}: start time must be before end time")
        blockouts.append(Blockout(
            day=day_index(entry.get("day")),
            start=start,
            end=end,
            name=str(entry.get("name") or "Blockout"),
            scope=BlockoutScope.parse(entry.get("applyTo")),
            id=str(entry.get("id") or f"blockout-{i}"),
        ))
    return blockouts


@app.post("/api/schedules")
def api_schedules():
    # Generates ranked plans from a JSON payload of chosen courses, sections and blockouts.
    catalog: Catalog = STATE["catalog"]
    body = request.get_json(silent=True) or {}
    try:
        selection = parse_selection(catalog, body.get("selection"))
        blockouts = parse_blockouts(body.get("blockouts"))
        config = PlannerConfig(
            max_courses_per_term=CONFIG.max_courses_per_term,
            allow_overload=bool(body.get("overload", CONFIG.allow_overload)),
            overload_ceiling=CONFIG.overload_ceiling,
            max_selected_courses=CONFIG.max_selected_courses,
        )
        result = generate_schedules(
            selection,
            catalog,
            catalog.terms[:2],
            blockouts,
            max_courses_per_term=body.get("maxPerTerm", CONFIG.max_courses_per_term),
            config=config,
        )
    except UnresolvableCourseError as e:
        return jsonify({"error": str(e), "courseCode": e.course_code}), 422
    except CapacityExceededError as e:
        return jsonify({"error": str(e), "term": e.term, "count": e.count, "capacity": e.capacity}), 422
    except (KeyError, ValueError, TypeError) as e:
        return jsonify({"error": e.args[0] if e.args else str(e)}), 400

    if result.plans:
        return jsonify({"plans": [p.to_dict() for p in result.plans], "availableTerms": list(result.terms)})

    # If no schedules are possible, point at the courses that cannot coexist.
    return jsonify({
        "error": "No valid schedules found",
        "plans": [],
        "unresolvablePairs": find_unresolvable_pairs(catalog, selection),
        "blockedCourses": find_blocked_courses(catalog, selection, blockouts, result.terms),
    })


def _selected_sections(catalog: Catalog, course: SelectedCourse):
    for term in course.terms:
        for label in course.sections:
            sec = catalog.section(course.code, term, label)
            if sec is not None:
                yield sec


def find_unresolvable_pairs(catalog: Catalog, selection: Sequence[SelectedCourse]) -> List[List[str]]:
    # Pairs of courses whose selected sections clash whenever they share a term.
    bad_pairs = []
    for i in range(len(selection)):
        for j in range(i + 1, len(selection)):
            a, b = selection[i], selection[j]
            if not any(
                sa.term != sb.term or not section_conflicts(sa.sessions, sb.sessions)
                for sa in _selected_sections(catalog, a)
                for sb in _selected_sections(catalog, b)
            ):
                bad_pairs.append([a.code, b.code])
    return bad_pairs


def find_blocked_courses(catalog: Catalog, selection: Sequence[SelectedCourse],
                         blockouts: Sequence[Blockout], terms: Sequence[str]) -> List[str]:
    # Courses whose every selected section runs into an applicable blockout.
    blocked = []
    for course in selection:
        free = False
        for sec in _selected_sections(catalog, course):
            if sec.term not in terms:
                continue
            slot = terms.index(sec.term) + 1
            applicable = [b for b in blockouts if b.scope.applies_to(slot)]
            if not blocked_sections(sec.sessions, applicable):
                free = True
                break
        if not free:
            blocked.append(course.code)
    return blocked


@app.get("/api/cart")
def api_cart_get():
    # Restores the cart saved against the currently loaded timetable, if any.
    cart = CARTS.get(STATE["hash"]) if STATE["hash"] else None
    if cart is None:
        return jsonify({"cart": None})
    return jsonify({"cart": cart})


@app.put("/api/cart")
def api_cart_put():
    body = request.get_json(silent=True) or {}
    data_hash = body.get("dataHash")
    if not STATE["hash"] or data_hash != STATE["hash"]:
        return jsonify({"error": "Cart does not match the loaded timetable"}), 409

    catalog: Catalog = STATE["catalog"]
    try:
        selection = parse_selection(catalog, body.get("selection"))
        blockouts = parse_blockouts(body.get("blockouts"))
    except (KeyError, ValueError) as e:
        return jsonify({"error": e.args[0] if e.args else str(e)}), 400

    CARTS.clear()  # Only the cart for the current timetable is kept.
    CARTS[data_hash] = {
        "selection": [{"courseCode": c.code, "sections": list(c.sections)} for c in selection],
        "blockouts": [b.to_dict() for b in blockouts],
    }
    return jsonify({"saved": True})


if __name__ == "__main__":
    # Load course data into memory and start the development server.
    logging.basicConfig(level=os.environ.get("PLANNER_LOG_LEVEL", "INFO"),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    load_catalog()
    app.run(debug=True)
