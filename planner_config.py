# planner_config.py
# Central configuration for the planner: per-term caps, overload limits and catalog filters.

import os
from dataclasses import dataclass

__all__ = [
    "PlannerConfig",
    "DEFAULT_MAX_COURSES_PER_TERM",
    "OVERLOAD_CEILING",
    "MAX_SELECTED_COURSES",
    "UNDERGRAD_CAREERS",
    "SUMMER_MARKERS",
    "FULL_YEAR_SUFFIX",
]

DEFAULT_MAX_COURSES_PER_TERM = 6
OVERLOAD_CEILING = 11
MAX_SELECTED_COURSES = 14

UNDERGRAD_CAREERS = frozenset({"UG", "UGME", "UGDE"})
SUMMER_MARKERS = ("summer", "sum sem")
FULL_YEAR_SUFFIX = "FY"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class PlannerConfig:
    max_courses_per_term: int = DEFAULT_MAX_COURSES_PER_TERM
    allow_overload: bool = False
    overload_ceiling: int = OVERLOAD_CEILING
    max_selected_courses: int = MAX_SELECTED_COURSES

    @classmethod
    def from_env(cls) -> "PlannerConfig":
        # Reads overrides from PLANNER_* environment variables.
        return cls(
            max_courses_per_term=_env_int("PLANNER_MAX_PER_TERM", DEFAULT_MAX_COURSES_PER_TERM),
            allow_overload=_env_flag("PLANNER_ALLOW_OVERLOAD", False),
            overload_ceiling=_env_int("PLANNER_OVERLOAD_CEILING", OVERLOAD_CEILING),
            max_selected_courses=_env_int("PLANNER_MAX_SELECTED", MAX_SELECTED_COURSES),
        )

    def resolve_cap(self, requested: int = None) -> int:
        # Validates a requested per-term cap against the overload rules and returns it.
        if requested is None:
            cap = self.max_courses_per_term
        elif isinstance(requested, bool) or not isinstance(requested, int):
            raise ValueError(f"Per-term cap must be an integer, got {requested!r}")
        else:
            cap = requested
        if cap < 1:
            raise ValueError(f"Per-term cap must be at least 1, got {cap}")
        if cap > self.max_courses_per_term:
            if not self.allow_overload:
                raise ValueError(
                    f"Per-term cap {cap} exceeds {self.max_courses_per_term}; overload is not enabled"
                )
            if cap > self.overload_ceiling:
                raise ValueError(f"Per-term cap {cap} exceeds the overload ceiling {self.overload_ceiling}")
        return cap
