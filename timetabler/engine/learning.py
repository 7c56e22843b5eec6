from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from timetabler.models.entities import LearnedPenalties


@dataclass(frozen=True)
class EditLog:
    class_id: str
    day: int
    period: int
    before: Optional[Dict[str, Any]] = None  # {subject_id, teacher_id}
    after: Optional[Dict[str, Any]] = None
    reason: str = "manual"


def is_move_away(edit: EditLog) -> bool:
    """Something was in the cell and the edit removed or changed it."""
    before, after = edit.before, edit.after
    if not before:
        return False
    if after is None:
        return True
    return before.get("subject_id") != after.get("subject_id") or before.get("teacher_id") != after.get("teacher_id")


def aggregate_moves(edits: Iterable[EditLog]) -> Dict[str, Dict[str, Dict[int, int]]]:
    """Count move-aways per (teacher, period) and (subject, period), across days."""
    teacher_moves: Dict[str, Dict[int, int]] = defaultdict(lambda: defaultdict(int))
    subject_moves: Dict[str, Dict[int, int]] = defaultdict(lambda: defaultdict(int))

    for edit in edits:
        if not is_move_away(edit):
            continue
        teacher_id = edit.before.get("teacher_id")
        subject_id = edit.before.get("subject_id")
        if teacher_id:
            teacher_moves[str(teacher_id)][int(edit.period)] += 1
        if subject_id:
            subject_moves[str(subject_id)][int(edit.period)] += 1

    return {
        "teacher_periods": {k: dict(v) for k, v in teacher_moves.items()},
        "subject_periods": {k: dict(v) for k, v in subject_moves.items()},
    }


def preference_penalties(
    edits: Iterable[EditLog],
    min_count: int = 2,
    teacher_weight: int = 5,
    subject_weight: int = 3,
) -> LearnedPenalties:
    """
    Turn repeated manual move-aways into per-period penalties.

    Only (id, period) pairs moved away from at least ``min_count`` times
    are penalised, by ``count * weight``.
    """
    moves = aggregate_moves(edits)

    def weigh(counts: Dict[str, Dict[int, int]], weight: int) -> Dict[str, Dict[int, int]]:
        result: Dict[str, Dict[int, int]] = {}
        for key, per_period in counts.items():
            kept = {p: c * weight for p, c in per_period.items() if c >= min_count}
            if kept:
                result[key] = kept
        return result

    return LearnedPenalties(
        teacher_periods=weigh(moves["teacher_periods"], teacher_weight),
        subject_periods=weigh(moves["subject_periods"], subject_weight),
    )
