import pytest

from course_catalog import normalize

SEM1 = "2025-26 Sem 1"
SEM2 = "2025-26 Sem 2"
DAY_COLUMNS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


def make_row(code, section, term=SEM1, days=("MON",), start="09:30", end="10:20", **extra):
    row = {
        "TERM": term,
        "ACAD_CAREER": "UG",
        "COURSE CODE": code,
        "CLASS SECTION": section,
        "START DATE": "2025-09-01",
        "END DATE": "2025-11-29",
        "VENUE": "MWT1",
        "START TIME": start,
        "END TIME": end,
        "COURSE TITLE": f"{code} title",
        "OFFER DEPT": "Computer Science",
        "INSTRUCTOR": "CHAN, Tai Man",
    }
    for col in DAY_COLUMNS:
        row[col] = col if col in days else ""
    row.update(extra)
    return row


@pytest.fixture
def rows():
    return [
        make_row("COMP1117", "1A", SEM1, ("MON", "WED"), "09:30", "10:20"),
        make_row("COMP1117", "1B", SEM1, ("TUE",), "14:30", "16:20"),
        make_row("COMP1117", "2A", SEM2, ("MON",), "09:30", "10:20"),
        make_row("MATH1013", "1A", SEM1, ("MON",), "10:00", "11:00"),
        make_row("MATH1013", "1A", SEM1, ("FRI",), "12:30", "13:20"),
        make_row("ENGG1310", "1A", SEM2, ("THU",), "16:30", "18:20"),
    ]


@pytest.fixture
def catalog(rows):
    return normalize(rows)
