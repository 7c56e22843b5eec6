import pytest
from timetabler.engine.assigner import GreedyAssigner
from timetabler.engine.diagnostics import compute_diagnostics
from timetabler.engine.index import build_index
from timetabler.engine.occupancy import OccupancySchedule, resource_key, teacher_key
from timetabler.engine.requirements import flatten_requirements
from timetabler.models.entities import Requirement, Resource, SchoolClass, SchoolConfig, Subject, Teacher
from conftest import full_week


def run_greedy(config):
    assigner = GreedyAssigner(config, build_index(config))
    assigner.run(flatten_requirements(config, build_index(config)))
    return assigner


def placed_cells(grid):
    return [(d, p, e) for d, row in enumerate(grid) for p, e in enumerate(row) if e is not None]


class TestGreedyAssigner:
    """Unit tests for first-fit placement."""

    def test_first_free_slot_is_used(self, single_class_config):
        """Lessons fill the earliest free periods."""
        assigner = run_greedy(single_class_config)
        cells = placed_cells(assigner.timetable["c1"])
        assert [(d, p) for d, p, _ in cells] == [(0, 0), (0, 1)]
        assert all(e.teacher_id == "t1" and not e.unassigned for _, _, e in cells)

    def test_teachers_tried_in_id_order(self):
        """Among qualified teachers the lowest id wins."""
        config = SchoolConfig(
            working_days=1,
            periods_per_day=2,
            subjects=[Subject(id="math", name="Math", weekly_periods=1)],
            teachers=[
                Teacher(id="t2", name="B", subjects=("math",), max_load=5, availability=full_week(1, 2)),
                Teacher(id="t1", name="A", subjects=("math",), max_load=5, availability=full_week(1, 2)),
            ],
            classes=[SchoolClass(id="c1", name="C1", subjects={"math": 1})],
        )
        assigner = run_greedy(config)
        assert assigner.timetable["c1"][0][0].teacher_id == "t1"

    def test_unqualified_teacher_never_chosen(self):
        """Only teachers listing the subject are considered."""
        config = SchoolConfig(
            working_days=1,
            periods_per_day=2,
            subjects=[Subject(id="math", name="Math", weekly_periods=1)],
            teachers=[
                Teacher(id="a", name="A", subjects=("art",), max_load=5, availability=full_week(1, 2)),
                Teacher(id="b", name="B", subjects=("math",), max_load=5, availability=full_week(1, 2)),
            ],
            classes=[SchoolClass(id="c1", name="C1", subjects={"math": 1})],
        )
        assigner = run_greedy(config)
        assert assigner.timetable["c1"][0][0].teacher_id == "b"

    def test_teacher_availability_respected(self):
        """Unavailable periods are skipped."""
        availability = full_week(2, 3)
        availability[0][0] = False
        config = SchoolConfig(
            working_days=2,
            periods_per_day=3,
            subjects=[Subject(id="math", name="Math", weekly_periods=1)],
            teachers=[Teacher(id="t1", name="A", subjects=("math",), max_load=5, availability=availability)],
            classes=[SchoolClass(id="c1", name="C1", subjects={"math": 1})],
        )
        assigner = run_greedy(config)
        assert assigner.timetable["c1"][0][0] is None
        assert assigner.timetable["c1"][0][1].teacher_id == "t1"

    def test_resource_scanned_in_list_order_with_availability(self):
        """Rooms are tried in listed order, skipping unavailable ones."""
        lab1_availability = full_week(1, 2)
        lab1_availability[0][0] = False
        config = SchoolConfig(
            working_days=1,
            periods_per_day=2,
            subjects=[Subject(id="chem", name="Chemistry", weekly_periods=1, lab=True)],
            teachers=[Teacher(id="t1", name="A", subjects=("chem",), max_load=5, availability=full_week(1, 2))],
            classes=[SchoolClass(id="c1", name="C1", subjects={"chem": 1})],
            resources=[
                Resource(id="lab1", type="lab", availability=lab1_availability),
                Resource(id="lab2", type="lab", availability=full_week(1, 2)),
            ],
        )
        assigner = run_greedy(config)
        entry = assigner.timetable["c1"][0][0]
        assert entry.resource_id == "lab2"

    def test_shared_resource_not_double_booked(self):
        """Two classes never share a lab in the same period."""
        config = SchoolConfig(
            working_days=1,
            periods_per_day=3,
            subjects=[Subject(id="chem", name="Chemistry", weekly_periods=1, lab=True)],
            teachers=[
                Teacher(id="t1", name="A", subjects=("chem",), max_load=5, availability=full_week(1, 3)),
                Teacher(id="t2", name="B", subjects=("chem",), max_load=5, availability=full_week(1, 3)),
            ],
            classes=[
                SchoolClass(id="c1", name="C1", subjects={"chem": 1}),
                SchoolClass(id="c2", name="C2", subjects={"chem": 1}),
            ],
            resources=[Resource(id="lab1", type="lab", availability=full_week(1, 3))],
        )
        assigner = run_greedy(config)
        assert assigner.timetable["c1"][0][0].resource_id == "lab1"
        assert assigner.timetable["c2"][0][0] is None
        assert assigner.timetable["c2"][0][1].resource_id == "lab1"

    def test_double_period_occupies_two_cells(self, double_period_config, assert_valid_timetable):
        """A double fills two adjacent cells with one head."""
        assigner = run_greedy(double_period_config)
        row = assigner.timetable["c1"][0]
        assert row[0].double and row[0].head_of_double
        assert row[1].double and not row[1].head_of_double
        assert row[2].head_of_double and row[3].is_tail
        assert row[0].resource_id == row[1].resource_id == "lab1"
        assert assigner.teacher_loads["t1"] == 4
        assert_valid_timetable(double_period_config, assigner.timetable)

    def test_double_never_straddles_day_end(self):
        """A double starts early enough to finish the same day."""
        availability = full_week(2, 3)
        config = SchoolConfig(
            working_days=2,
            periods_per_day=3,
            subjects=[Subject(id="sci", name="Science", weekly_periods=2, double_period=True)],
            teachers=[Teacher(id="t1", name="A", subjects=("sci",), max_load=10, availability=availability)],
            classes=[SchoolClass(id="c1", name="C1", subjects={"sci": 2})],
        )
        assigner = run_greedy(config)
        grid = assigner.timetable["c1"]
        assert grid[0][0].head_of_double and grid[0][1].is_tail and grid[0][2] is None
        assert grid[1][0].head_of_double and grid[1][1].is_tail


class TestUnassignedFallback:
    """Failure degrades to unassigned markers."""

    def test_missing_resource_marks_unassigned(self, lab_without_resources_config):
        """Lab subjects with no labs become unassigned markers."""
        assigner = run_greedy(lab_without_resources_config)
        markers = [
            e for grid in assigner.timetable.values() for row in grid for e in row
            if e is not None and e.unassigned
        ]
        assert len(markers) == 5
        assert all(e.subject_id == "chem" and e.teacher_id is None for e in markers)
        assert "t1" not in assigner.teacher_loads or assigner.teacher_loads["t1"] == 0

    def test_marker_takes_first_free_class_slot(self):
        """Markers take the first free cell of the class."""
        config = SchoolConfig(
            working_days=1,
            periods_per_day=3,
            subjects=[
                Subject(id="eng", name="English", weekly_periods=1),
                Subject(id="chem", name="Chemistry", weekly_periods=1, lab=True),
            ],
            teachers=[Teacher(id="t1", name="A", subjects=("eng",), max_load=5, availability=full_week(1, 3))],
            classes=[SchoolClass(id="c1", name="C1", subjects={"chem": 1, "eng": 1})],
        )
        assigner = run_greedy(config)
        row = assigner.timetable["c1"][0]
        # chem is ordered first (resource-bound) and fails, taking period 0
        assert row[0].unassigned and row[0].subject_id == "chem"
        assert row[1].subject_id == "eng" and row[1].teacher_id == "t1"

    def test_unassigned_double_marker_spans_two_cells(self):
        """A failed double marks two adjacent cells."""
        config = SchoolConfig(
            working_days=1,
            periods_per_day=3,
            subjects=[Subject(id="sci", name="Science", weekly_periods=2, double_period=True)],
            classes=[SchoolClass(id="c1", name="C1", subjects={"sci": 1})],
        )
        assigner = GreedyAssigner(config, build_index(config))
        assert assigner.assign(Requirement("c1", "sci", requires_double=True)) is False
        row = assigner.timetable["c1"][0]
        assert row[0].unassigned and row[0].head_of_double
        assert row[1].unassigned and row[1].is_tail
        assert row[2] is None

    def test_unassigned_double_split_when_no_adjacent_pair(self, assert_valid_timetable):
        """A failed double with only scattered free cells still records both periods."""
        availability = full_week(1, 4)
        availability[0][0] = False
        availability[0][3] = False
        config = SchoolConfig(
            working_days=1,
            periods_per_day=4,
            subjects=[Subject(id="sci", name="Science", weekly_periods=2, double_period=True)],
            teachers=[Teacher(id="t1", name="A", subjects=("sci",), max_load=10, availability=availability)],
            classes=[SchoolClass(id="c1", name="C1", subjects={"sci": 2})],
        )
        assigner = run_greedy(config)
        row = assigner.timetable["c1"][0]
        assert row[1].head_of_double and not row[1].unassigned
        assert row[2].is_tail and not row[2].unassigned
        assert row[0].unassigned and row[0].head_of_double
        assert row[3].unassigned and row[3].is_tail
        assert compute_diagnostics(assigner.timetable, config).unassigned_count == 2
        assert_valid_timetable(config, assigner.timetable)

    def test_load_bound_respected(self, overloaded_teacher_config, assert_valid_timetable):
        """Teacher load never exceeds max_load."""
        assigner = run_greedy(overloaded_teacher_config)
        assert assigner.teacher_loads["t1"] == 5
        unassigned = sum(
            1 for grid in assigner.timetable.values() for row in grid for e in row if e is not None and e.unassigned
        )
        assert unassigned == 3
        assert_valid_timetable(overloaded_teacher_config, assigner.timetable)

    def test_returns_false_on_failure(self, lab_without_resources_config):
        """assign reports whether the requirement was placed."""
        assigner = GreedyAssigner(lab_without_resources_config, build_index(lab_without_resources_config))
        assert assigner.assign(Requirement("c1", "chem", resource_type="lab")) is False
        assert assigner.assign(Requirement("c1", "eng")) is True


class TestOccupancy:
    """Occupancy tables stay consistent with the grids."""

    def test_schedules_match_timetable(self, school_config, assert_valid_timetable):
        """Occupancy tables agree with a rebuild from the grids."""
        assigner = run_greedy(school_config)
        assert_valid_timetable(school_config, assigner.timetable)
        assert assigner.teacher_schedule.as_dict() == OccupancySchedule.rebuild_from(assigner.timetable, teacher_key).as_dict()
        assert assigner.resource_schedule.as_dict() == OccupancySchedule.rebuild_from(assigner.timetable, resource_key).as_dict()

    def test_occupy_and_release(self):
        """Released periods become free again."""
        schedule = OccupancySchedule()
        assert schedule.is_free("t1", 0, [0, 1])
        schedule.occupy("t1", 0, [1, 2])
        assert not schedule.is_free("t1", 0, [0, 1])
        assert schedule.is_free("t1", 1, [1])
        schedule.release("t1", 0, [1, 2])
        assert schedule.is_free("t1", 0, [1, 2])
        assert schedule.as_dict() == {}

    @pytest.mark.parametrize("periods", [[0], [3, 4]])
    def test_release_of_unknown_key_is_noop(self, periods):
        """Releasing something never occupied changes nothing."""
        schedule = OccupancySchedule()
        schedule.release("nobody", 0, periods)
        assert schedule.as_dict() == {}
