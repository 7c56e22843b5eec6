"""
Local Search Optimizer

Refines a complete timetable by swapping pairs of placed entries.

Loop (per iteration of a fixed budget):
1. Pool every placed entry (heads only for double periods)
2. Draw two entries with the seeded generator
3. Check the swap against hard constraints
4. Apply it, re-score the whole timetable
5. Keep it only on strict improvement, otherwise roll back both grids

Key Features:
- Deterministic for a given seed and budget
- Never accepts uphill or sideways moves
- Timetable stays valid after every iteration, accepted or not
- Teacher/resource occupancy tables follow every apply and rollback

Complexity:
- O(iterations * cells) since each trial re-scores the full timetable;
  fine for school-sized inputs (tens of classes, few days/periods)
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from timetabler.engine.diagnostics import compute_penalty
from timetabler.engine.index import DomainIndex, build_index
from timetabler.engine.occupancy import OccupancySchedule, resource_key, teacher_key
from timetabler.engine.rng import LcgRandom
from timetabler.models.entities import (
    LearnedPenalties,
    PenaltyWeights,
    SchoolConfig,
    Timetable,
    TimetableEntry,
    clone_grid,
)

logger = logging.getLogger(__name__)

Cell = Tuple[str, int, int]  # (class_id, day, period)


@dataclass(frozen=True)
class PlacedEntry:
    class_id: str
    day: int
    period: int
    entry: TimetableEntry

    def cells(self) -> List[Cell]:
        return [(self.class_id, self.day, self.period + i) for i in range(self.entry.span)]

    def same_slot(self, other: "PlacedEntry") -> bool:
        return (self.class_id, self.day, self.period) == (other.class_id, other.day, other.period)


class SwapOptimizer:
    def __init__(
        self,
        timetable: Timetable,
        config: SchoolConfig,
        index: Optional[DomainIndex] = None,
        teacher_schedule: Optional[OccupancySchedule] = None,
        resource_schedule: Optional[OccupancySchedule] = None,
        weights: Optional[PenaltyWeights] = None,
        learned: Optional[LearnedPenalties] = None,
        rng: Optional[LcgRandom] = None,
    ):
        self.timetable = timetable
        self.config = config
        self.index = index or build_index(config)
        self.resources_by_id = {r.id: r for r in config.resources}
        self.teacher_schedule = teacher_schedule or OccupancySchedule.rebuild_from(timetable, teacher_key)
        self.resource_schedule = resource_schedule or OccupancySchedule.rebuild_from(timetable, resource_key)
        self.weights = weights
        self.learned = learned
        self.rng = rng or LcgRandom()

        self.best_penalty: Optional[int] = None
        self.penalty_history: List[int] = []
        self.attempted = 0
        self.accepted = 0

    def penalty(self) -> int:
        return compute_penalty(self.timetable, self.config, self.weights, self.learned)

    def collect_pool(self) -> List[PlacedEntry]:
        pool: List[PlacedEntry] = []
        for class_id, grid in self.timetable.items():
            for day, row in enumerate(grid):
                for period, entry in enumerate(row):
                    if entry is None or entry.unassigned or entry.is_tail:
                        continue
                    pool.append(PlacedEntry(class_id, day, period, entry))
        return pool

    def _cell(self, cell: Cell) -> Optional[TimetableEntry]:
        class_id, day, period = cell
        return self.timetable[class_id][day][period]

    def _available(self, entry: TimetableEntry, day: int, periods: List[int]) -> bool:
        teacher = self.index.teachers_by_id[entry.teacher_id]
        if not all(teacher.availability[day][p] is True for p in periods):
            return False
        if entry.resource_id is not None:
            resource = self.resources_by_id[entry.resource_id]
            if resource.availability is not None and not all(
                resource.availability[day][p] is True for p in periods
            ):
                return False
        return True

    def _destinations(self, a: PlacedEntry, b: PlacedEntry) -> Tuple[List[Cell], List[Cell]]:
        a_dest = [(b.class_id, b.day, b.period + i) for i in range(a.entry.span)]
        b_dest = [(a.class_id, a.day, a.period + i) for i in range(b.entry.span)]
        return a_dest, b_dest

    def swap_feasible(self, a: PlacedEntry, b: PlacedEntry) -> bool:
        """
        Check that exchanging the positions of ``a`` and ``b`` keeps every
        hard constraint.

        Rules:
        - Cross-class swaps need the same subject, so weekly counts hold
        - A double must fit inside the day at its destination
        - Destination cells are empty or vacated by this very swap
        - Teachers and resources are available at their new periods
        - No teacher or resource ends up in two classes at once, judged on
          the state after the swap
        """
        A, B = a.entry, b.entry
        periods = self.config.periods_per_day

        if a.class_id != b.class_id and A.subject_id != B.subject_id:
            return False
        if b.period + A.span > periods or a.period + B.span > periods:
            return False

        vacated = set(a.cells()) | set(b.cells())
        a_dest, b_dest = self._destinations(a, b)
        if set(a_dest) & set(b_dest):
            return False

        for cell in a_dest + b_dest:
            if self._cell(cell) is not None and cell not in vacated:
                return False

        if not self._available(A, b.day, [c[2] for c in a_dest]):
            return False
        if not self._available(B, a.day, [c[2] for c in b_dest]):
            return False

        incoming: Dict[Cell, TimetableEntry] = {c: A for c in a_dest}
        incoming.update({c: B for c in b_dest})

        def occupant_after(cell: Cell) -> Optional[TimetableEntry]:
            if cell in incoming:
                return incoming[cell]
            if cell in vacated:
                return None
            return self._cell(cell)

        for moving, dest in ((A, a_dest), (B, b_dest)):
            for dest_class, day, period in dest:
                for class_id in self.timetable:
                    if class_id == dest_class:
                        continue
                    other = occupant_after((class_id, day, period))
                    if other is None or other.unassigned:
                        continue
                    if moving.teacher_id and other.teacher_id == moving.teacher_id:
                        return False
                    if moving.resource_id and other.resource_id == moving.resource_id:
                        return False
        return True

    def _release(self, entry: TimetableEntry, day: int, periods: List[int]) -> None:
        self.teacher_schedule.release(entry.teacher_id, day, periods)
        if entry.resource_id is not None:
            self.resource_schedule.release(entry.resource_id, day, periods)

    def _occupy(self, entry: TimetableEntry, day: int, periods: List[int]) -> None:
        self.teacher_schedule.occupy(entry.teacher_id, day, periods)
        if entry.resource_id is not None:
            self.resource_schedule.occupy(entry.resource_id, day, periods)

    def _place(self, entry: TimetableEntry, cells: List[Cell]) -> None:
        for i, (class_id, day, period) in enumerate(cells):
            cell_entry = dataclasses.replace(entry, head_of_double=(i == 0)) if entry.double else entry
            self.timetable[class_id][day][period] = cell_entry

    def apply_swap(self, a: PlacedEntry, b: PlacedEntry) -> None:
        """Exchange positions of two entries; the caller checks feasibility first."""
        A, B = a.entry, b.entry
        a_dest, b_dest = self._destinations(a, b)

        self._release(A, a.day, [c[2] for c in a.cells()])
        self._release(B, b.day, [c[2] for c in b.cells()])
        for class_id, day, period in a.cells() + b.cells():
            self.timetable[class_id][day][period] = None

        self._place(A, a_dest)
        self._place(B, b_dest)
        self._occupy(A, b.day, [c[2] for c in a_dest])
        self._occupy(B, a.day, [c[2] for c in b_dest])

    def _rollback(self, a: PlacedEntry, b: PlacedEntry, snapshot: Dict[str, list]) -> None:
        A, B = a.entry, b.entry
        a_dest, b_dest = self._destinations(a, b)
        self._release(A, b.day, [c[2] for c in a_dest])
        self._release(B, a.day, [c[2] for c in b_dest])
        for class_id, grid in snapshot.items():
            self.timetable[class_id] = grid
        self._occupy(A, a.day, [c[2] for c in a.cells()])
        self._occupy(B, b.day, [c[2] for c in b.cells()])

    def optimize(self, iterations: int) -> int:
        """
        Run the swap loop for ``iterations`` draws and return the best penalty.

        Draws that pick the same slot twice, or whose swap is infeasible,
        still use up one iteration.
        """
        best = self.penalty()
        self.best_penalty = best

        for _ in range(max(0, iterations)):
            pool = self.collect_pool()
            if len(pool) < 2:
                break

            a = pool[self.rng.randrange(len(pool))]
            b = pool[self.rng.randrange(len(pool))]
            self.penalty_history.append(best)
            if a.same_slot(b):
                continue
            if not self.swap_feasible(a, b):
                continue

            self.attempted += 1
            snapshot = {cid: clone_grid(self.timetable[cid]) for cid in {a.class_id, b.class_id}}
            self.apply_swap(a, b)
            new_penalty = self.penalty()

            if new_penalty < best:
                logger.debug(f"Swap accepted {a.class_id}@{a.day}/{a.period} <-> {b.class_id}@{b.day}/{b.period}: {best} -> {new_penalty}")
                best = new_penalty
                self.accepted += 1
            else:
                self._rollback(a, b, snapshot)

        self.best_penalty = best
        return best
