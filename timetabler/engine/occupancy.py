from collections import defaultdict
from typing import Callable, Dict, Iterable, Optional, Set

from timetabler.models.entities import Timetable, TimetableEntry


class OccupancySchedule:
    """
    Keyed occupancy table: id -> day -> set of busy periods.

    Used for teachers and resources alike. It is a cache over the
    timetable and must be updated in the same operation that changes a grid.
    """

    def __init__(self):
        self._busy: Dict[str, Dict[int, Set[int]]] = defaultdict(lambda: defaultdict(set))

    def is_free(self, key: str, day: int, periods: Iterable[int]) -> bool:
        if key not in self._busy:
            return True
        used = self._busy[key].get(day)
        if not used:
            return True
        return not any(p in used for p in periods)

    def occupy(self, key: str, day: int, periods: Iterable[int]) -> None:
        self._busy[key][day].update(periods)

    def release(self, key: str, day: int, periods: Iterable[int]) -> None:
        if key not in self._busy:
            return
        used = self._busy[key].get(day)
        if used is None:
            return
        used.difference_update(periods)
        if not used:
            del self._busy[key][day]
        if not self._busy[key]:
            del self._busy[key]

    def as_dict(self) -> Dict[str, Dict[int, Set[int]]]:
        """Plain copy without empty days, for comparisons."""
        return {
            key: {day: set(periods) for day, periods in days.items() if periods}
            for key, days in self._busy.items()
            if any(days.values())
        }

    @classmethod
    def rebuild_from(
        cls,
        timetable: Timetable,
        key_of: Callable[[TimetableEntry], Optional[str]],
    ) -> "OccupancySchedule":
        schedule = cls()
        for grid in timetable.values():
            for day, row in enumerate(grid):
                for period, entry in enumerate(row):
                    if entry is None or entry.unassigned:
                        continue
                    key = key_of(entry)
                    if key is not None:
                        schedule.occupy(key, day, [period])
        return schedule


def teacher_key(entry: TimetableEntry) -> Optional[str]:
    return entry.teacher_id


def resource_key(entry: TimetableEntry) -> Optional[str]:
    return entry.resource_id
