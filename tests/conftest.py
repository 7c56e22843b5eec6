import pytest
from collections import defaultdict

from timetabler.models.entities import Resource, SchoolClass, SchoolConfig, Subject, Teacher


def full_week(days=5, periods=6, value=True):
    return [[value] * periods for _ in range(days)]


@pytest.fixture
def single_class_config():
    """1 class, 1 subject needing 2 periods, 1 fully available teacher."""
    return SchoolConfig(
        working_days=5,
        periods_per_day=6,
        subjects=[Subject(id="math", name="Mathematics", weekly_periods=2)],
        teachers=[Teacher(id="t1", name="Ada", subjects=("math",), max_load=20, availability=full_week())],
        classes=[SchoolClass(id="c1", name="Class 1", subjects={"math": 2})],
    )


@pytest.fixture
def lab_without_resources_config():
    """Lab subject with no lab resources at all."""
    return SchoolConfig(
        working_days=5,
        periods_per_day=6,
        subjects=[
            Subject(id="chem", name="Chemistry", weekly_periods=3, lab=True),
            Subject(id="eng", name="English", weekly_periods=2),
        ],
        teachers=[
            Teacher(id="t1", name="Curie", subjects=("chem",), max_load=20, availability=full_week()),
            Teacher(id="t2", name="Woolf", subjects=("eng",), max_load=20, availability=full_week()),
        ],
        classes=[
            SchoolClass(id="c1", name="Class 1", subjects={"chem": 3, "eng": 2}),
            SchoolClass(id="c2", name="Class 2", subjects={"chem": 2, "eng": 2}),
        ],
        resources=[Resource(id="gym", type="gym", availability=full_week())],
    )


@pytest.fixture
def overloaded_teacher_config():
    """Two classes competing for one teacher whose max load is too small."""
    return SchoolConfig(
        working_days=5,
        periods_per_day=6,
        subjects=[Subject(id="math", name="Mathematics", weekly_periods=4)],
        teachers=[Teacher(id="t1", name="Ada", subjects=("math",), max_load=5, availability=full_week())],
        classes=[
            SchoolClass(id="c1", name="Class 1", subjects={"math": 4}),
            SchoolClass(id="c2", name="Class 2", subjects={"math": 4}),
        ],
    )


@pytest.fixture
def double_period_config():
    """One class with a double-period lab subject."""
    return SchoolConfig(
        working_days=5,
        periods_per_day=6,
        subjects=[Subject(id="sci", name="Science", weekly_periods=2, lab=True, double_period=True)],
        teachers=[Teacher(id="t1", name="Curie", subjects=("sci",), max_load=20, availability=full_week())],
        classes=[SchoolClass(id="c1", name="Class 1", subjects={"sci": 2})],
        resources=[Resource(id="lab1", type="lab", availability=full_week())],
    )


@pytest.fixture
def school_config():
    """Mid-sized school: three classes, doubles, two lab types, partial availability."""
    t4_availability = full_week()
    t4_availability[4] = [False] * 6
    t3_availability = full_week()
    t3_availability[0][0] = False
    t3_availability[2][5] = False
    lab2_availability = full_week()
    lab2_availability[0] = [False] * 6

    return SchoolConfig(
        working_days=5,
        periods_per_day=6,
        subjects=[
            Subject(id="math", name="Mathematics", weekly_periods=5),
            Subject(id="eng", name="English", weekly_periods=4),
            Subject(id="sci", name="Science", weekly_periods=2, lab=True, double_period=True),
            Subject(id="comp", name="Computer Science", weekly_periods=2, lab=True),
            Subject(id="art", name="Art", weekly_periods=2),
            Subject(id="hist", name="History", weekly_periods=3),
        ],
        teachers=[
            Teacher(id="t1", name="Ada", subjects=("math", "sci"), max_load=25, availability=full_week()),
            Teacher(id="t2", name="Woolf", subjects=("eng", "hist"), max_load=25, availability=full_week()),
            Teacher(id="t3", name="Curie", subjects=("sci", "comp"), max_load=20, availability=t3_availability),
            Teacher(id="t4", name="Kahlo", subjects=("art", "math"), max_load=20, availability=t4_availability),
        ],
        classes=[
            SchoolClass(id="7A", name="Year 7A", subjects={"math": 5, "eng": 4, "sci": 2, "comp": 2, "art": 2, "hist": 3}),
            SchoolClass(id="7B", name="Year 7B", subjects={"math": 5, "eng": 4, "sci": 2, "comp": 2, "art": 2, "hist": 3}),
            SchoolClass(id="8A", name="Year 8A", subjects={"math": 5, "eng": 4, "sci": 2, "comp": 2, "art": 2, "hist": 3}),
        ],
        resources=[
            Resource(id="lab1", type="lab", availability=full_week()),
            Resource(id="lab2", type="lab", availability=lab2_availability),
            Resource(id="cl1", type="computer_lab", availability=full_week()),
        ],
    )


@pytest.fixture
def assert_valid_timetable():
    """Checks every hard constraint and demand conservation on a timetable."""

    def check(config, timetable):
        teachers = {t.id: t for t in config.teachers}
        resources = {r.id: r for r in config.resources}
        loads = defaultdict(int)

        for d in range(config.working_days):
            for p in range(config.periods_per_day):
                seen_teachers = set()
                seen_resources = set()
                for grid in timetable.values():
                    e = grid[d][p]
                    if e is None or e.unassigned:
                        continue
                    assert e.teacher_id not in seen_teachers, f"teacher {e.teacher_id} double-booked at {d}/{p}"
                    seen_teachers.add(e.teacher_id)
                    if e.resource_id is not None:
                        assert e.resource_id not in seen_resources, f"resource {e.resource_id} double-booked at {d}/{p}"
                        seen_resources.add(e.resource_id)
                        avail = resources[e.resource_id].availability
                        assert avail is None or avail[d][p] is True
                    teacher = teachers[e.teacher_id]
                    assert e.subject_id in teacher.subjects
                    assert teacher.availability[d][p] is True
                    loads[e.teacher_id] += 1

        for teacher_id, load in loads.items():
            assert load <= teachers[teacher_id].max_load

        for cls in config.classes:
            grid = timetable[cls.id]
            marker_halves = defaultdict(int)
            for d, row in enumerate(grid):
                for p, e in enumerate(row):
                    if e is None or not e.double:
                        continue
                    if e.unassigned:
                        # unassigned halves may be split when no adjacent pair was free
                        marker_halves[e.subject_id] += 1 if e.head_of_double else -1
                        continue
                    if e.head_of_double:
                        assert p + 1 < config.periods_per_day
                        tail = row[p + 1]
                        assert tail is not None and tail.double and not tail.head_of_double
                        assert (tail.subject_id, tail.teacher_id, tail.resource_id, tail.unassigned) == (
                            e.subject_id, e.teacher_id, e.resource_id, e.unassigned
                        )
                    else:
                        assert p > 0 and row[p - 1] is not None and row[p - 1].head_of_double
            assert all(v == 0 for v in marker_halves.values())

            units = defaultdict(int)
            for row in grid:
                for e in row:
                    if e is not None and not e.is_tail:
                        units[e.subject_id] += 1
            assert dict(units) == {sid: n for sid, n in cls.subjects.items() if n > 0}

    return check
