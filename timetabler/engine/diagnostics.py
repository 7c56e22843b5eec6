from collections import defaultdict
from typing import Dict, List, Optional

from timetabler.models.entities import (
    Diagnostics,
    LearnedPenalties,
    PenaltyWeights,
    SchoolConfig,
    Timetable,
    TimetableEntry,
)


def is_same_double(entry: TimetableEntry, nxt: TimetableEntry) -> bool:
    """True when the two cells are the head and tail of one double period."""
    return (
        entry.double
        and entry.head_of_double
        and nxt.double
        and not nxt.head_of_double
        and entry.subject_id == nxt.subject_id
        and entry.teacher_id == nxt.teacher_id
    )


def compute_diagnostics(
    timetable: Timetable,
    config: SchoolConfig,
    weights: Optional[PenaltyWeights] = None,
    learned: Optional[LearnedPenalties] = None,
) -> Diagnostics:
    """
    Score a timetable snapshot against the soft constraints.

    Contributions:
    - every unassigned cell: ``weights.unassigned``
    - same subject in consecutive periods of a class, other than the two
      halves of one double: ``weights.adjacency``
    - teacher busy, free, busy on one day: ``weights.idle_gap``
    - learned per-period penalties, when given

    Reads only; safe to call at any point of generation.
    """
    weights = weights or PenaltyWeights()
    days = config.working_days
    periods = config.periods_per_day

    unassigned_count = 0
    breakdown = {"unassigned": 0, "adjacency": 0, "idle_gap": 0, "learned": 0}
    teacher_loads: Dict[str, int] = defaultdict(int)
    teacher_days: Dict[str, Dict[int, List[bool]]] = defaultdict(dict)

    for grid in timetable.values():
        for d in range(days):
            row = grid[d]
            for p in range(periods):
                entry = row[p]
                if entry is None:
                    continue
                if entry.unassigned:
                    unassigned_count += 1
                    breakdown["unassigned"] += weights.unassigned
                    continue

                if entry.teacher_id:
                    teacher_loads[entry.teacher_id] += 1
                    usage = teacher_days[entry.teacher_id].setdefault(d, [False] * periods)
                    usage[p] = True

                if learned is not None:
                    breakdown["learned"] += learned.for_cell(entry, p)

                if p + 1 < periods:
                    nxt = row[p + 1]
                    if (
                        nxt is not None
                        and not nxt.unassigned
                        and entry.subject_id == nxt.subject_id
                        and not is_same_double(entry, nxt)
                    ):
                        breakdown["adjacency"] += weights.adjacency

    for day_map in teacher_days.values():
        for usage in day_map.values():
            for p in range(1, len(usage) - 1):
                if usage[p - 1] and not usage[p] and usage[p + 1]:
                    breakdown["idle_gap"] += weights.idle_gap

    return Diagnostics(
        unassigned_count=unassigned_count,
        penalty_score=sum(breakdown.values()),
        teacher_loads=dict(sorted(teacher_loads.items())),
        penalty_breakdown=breakdown,
    )


def compute_penalty(
    timetable: Timetable,
    config: SchoolConfig,
    weights: Optional[PenaltyWeights] = None,
    learned: Optional[LearnedPenalties] = None,
) -> int:
    return compute_diagnostics(timetable, config, weights, learned).penalty_score
