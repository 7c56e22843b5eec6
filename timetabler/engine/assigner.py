"""
Greedy Slot Assigner

Places one requirement at a time into the first feasible
(day, period[, period + 1], teacher[, resource]) combination.

Hard constraints checked per candidate:
- Class grid cells are empty
- Teacher is qualified, available and not already teaching at that time
- Teacher load plus the span stays within max_load
- A resource of the required type is available and not booked

Commitments are never revisited. If nothing fits anywhere, the first free
class slot receives an unassigned marker so the demand still consumes
capacity in the class grid. An unassigned double with no two adjacent free
cells left is split over the first free cells instead.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from timetabler.engine.index import DomainIndex
from timetabler.engine.occupancy import OccupancySchedule
from timetabler.models.entities import (
    Grid,
    Requirement,
    Resource,
    SchoolConfig,
    Teacher,
    Timetable,
    TimetableEntry,
    make_empty_grid,
)

logger = logging.getLogger(__name__)


def span_periods(start: int, span: int) -> List[int]:
    return list(range(start, start + span))


def slots_are_free(grid: Grid, day: int, periods: List[int]) -> bool:
    return all(grid[day][p] is None for p in periods)


def teacher_can_teach(teacher: Teacher, subject_id: str) -> bool:
    return subject_id in teacher.subjects


def teacher_available(teacher: Teacher, day: int, periods: List[int]) -> bool:
    day_row = teacher.availability[day]
    return all(day_row[p] is True for p in periods)


def resource_available(resource: Resource, day: int, periods: List[int]) -> bool:
    if resource.availability is None:
        return True
    day_row = resource.availability[day]
    return all(day_row[p] is True for p in periods)


class GreedyAssigner:
    """
    Builds the initial timetable.

    Owns the class grids plus the teacher/resource occupancy tables and
    running teacher loads; the optimizer takes these over afterwards.
    """

    def __init__(self, config: SchoolConfig, index: DomainIndex):
        self.config = config
        self.index = index
        self.days = config.working_days
        self.periods = config.periods_per_day

        self.timetable: Timetable = {c.id: make_empty_grid(self.days, self.periods) for c in config.classes}
        self.teacher_schedule = OccupancySchedule()
        self.resource_schedule = OccupancySchedule()
        self.teacher_loads: Dict[str, int] = defaultdict(int)
        self.max_load: Dict[str, int] = {t.id: t.max_load or 0 for t in config.teachers}
        self.teacher_order: List[str] = sorted(t.id for t in config.teachers)

    def _pick_teacher(self, subject_id: str, day: int, periods: List[int]) -> Optional[str]:
        span = len(periods)
        for teacher_id in self.teacher_order:
            teacher = self.index.teachers_by_id[teacher_id]
            if not teacher_can_teach(teacher, subject_id):
                continue
            if not teacher_available(teacher, day, periods):
                continue
            if not self.teacher_schedule.is_free(teacher_id, day, periods):
                continue
            if self.teacher_loads[teacher_id] + span > self.max_load[teacher_id]:
                continue
            return teacher_id
        return None

    def _pick_resource(self, resource_type: str, day: int, periods: List[int]) -> Optional[Resource]:
        for r in self.index.resources_by_type.get(resource_type, []):
            if not resource_available(r, day, periods):
                continue
            if not self.resource_schedule.is_free(r.id, day, periods):
                continue
            return r
        return None

    def assign(self, req: Requirement) -> bool:
        """Place a requirement. Returns False when it had to be marked unassigned."""
        grid = self.timetable[req.class_id]
        span = req.span

        for day in range(self.days):
            for start in range(self.periods - span + 1):
                periods = span_periods(start, span)
                if not slots_are_free(grid, day, periods):
                    continue

                teacher_id = self._pick_teacher(req.subject_id, day, periods)
                if teacher_id is None:
                    continue

                resource = None
                if req.resource_type:
                    resource = self._pick_resource(req.resource_type, day, periods)
                    if resource is None:
                        continue

                self._commit(req, grid, day, periods, teacher_id, resource)
                return True

        self._mark_unassigned(req, grid)
        return False

    def _commit(
        self,
        req: Requirement,
        grid: Grid,
        day: int,
        periods: List[int],
        teacher_id: str,
        resource: Optional[Resource],
    ) -> None:
        resource_id = resource.id if resource is not None else None
        if req.requires_double:
            grid[day][periods[0]] = TimetableEntry(
                req.subject_id, teacher_id, resource_id, double=True, head_of_double=True
            )
            grid[day][periods[1]] = TimetableEntry(
                req.subject_id, teacher_id, resource_id, double=True, head_of_double=False
            )
        else:
            grid[day][periods[0]] = TimetableEntry(req.subject_id, teacher_id, resource_id)

        self.teacher_schedule.occupy(teacher_id, day, periods)
        if resource_id is not None:
            self.resource_schedule.occupy(resource_id, day, periods)
        self.teacher_loads[teacher_id] += len(periods)

    def _mark_unassigned(self, req: Requirement, grid: Grid) -> None:
        span = req.span
        for day in range(self.days):
            for start in range(self.periods - span + 1):
                periods = span_periods(start, span)
                if not slots_are_free(grid, day, periods):
                    continue
                self._write_marker(req, grid, [(day, p) for p in periods])
                logger.debug(f"Unassigned {req.class_id}/{req.subject_id} marked at day {day} period {start}")
                return

        # No contiguous run left: spread the marker over the first free cells
        free = [(d, p) for d in range(self.days) for p in range(self.periods) if grid[d][p] is None]
        cells = free[:span]
        self._write_marker(req, grid, cells)
        if len(cells) < span:
            logger.warning(
                f"No free slot left in class {req.class_id} to record unmet demand for {req.subject_id} "
                f"({span - len(cells)} period(s) unrecorded)"
            )
        else:
            logger.debug(f"Unassigned {req.class_id}/{req.subject_id} split across {cells}")

    def _write_marker(self, req: Requirement, grid: Grid, cells: List[Tuple[int, int]]) -> None:
        for i, (day, period) in enumerate(cells):
            grid[day][period] = TimetableEntry(
                req.subject_id,
                double=req.requires_double,
                head_of_double=req.requires_double and i == 0,
                unassigned=True,
            )

    def run(self, requirements: List[Requirement]) -> int:
        """Assign every requirement in order; returns the number that failed."""
        failed = 0
        for req in requirements:
            if not self.assign(req):
                failed += 1
        return failed
