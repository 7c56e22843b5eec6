import csv
import io
from typing import List, Optional, Sequence

from timetabler.models.entities import Timetable, TimetableEntry

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
VIEWS = ("class", "teacher", "room")


def _infer_days(timetable: Timetable) -> int:
    first = next(iter(timetable.values()), None)
    return len(first) if first else 5


def _infer_periods(timetable: Timetable) -> int:
    first = next(iter(timetable.values()), None)
    return len(first[0]) if first and first[0] else 6


def cell_to_string(entry: Optional[TimetableEntry], include_teacher: bool = False) -> str:
    if entry is None or entry.unassigned:
        return ""
    if include_teacher and entry.teacher_id:
        return f"{entry.subject_id} ({entry.teacher_id})"
    return entry.subject_id


def generate_csv_rows(
    timetable: Timetable,
    view: str,
    target_id: str,
    days: Optional[int] = None,
    periods: Optional[int] = None,
    day_names: Optional[Sequence[str]] = None,
) -> List[List[str]]:
    """
    Tabulate one view of a timetable: a class grid, or where a teacher or
    room is busy (``classId:subjectId``) across all classes.
    """
    days = days or _infer_days(timetable)
    periods = periods or _infer_periods(timetable)
    day_names = list(day_names or DAY_NAMES[:days])

    def label(d: int) -> str:
        return day_names[d] if d < len(day_names) else f"D{d + 1}"

    rows = [["Day"] + [f"P{i + 1}" for i in range(periods)]]

    if view == "class":
        grid = timetable.get(target_id)
        for d in range(days):
            row = [label(d)]
            for p in range(periods):
                row.append(cell_to_string(grid[d][p]) if grid else "")
            rows.append(row)
        return rows

    if view in ("teacher", "room"):
        attr = "teacher_id" if view == "teacher" else "resource_id"
        for d in range(days):
            row = [label(d)]
            for p in range(periods):
                text = ""
                for class_id, grid in timetable.items():
                    entry = grid[d][p]
                    if entry is not None and not entry.unassigned and getattr(entry, attr) == target_id:
                        text = f"{class_id}:{entry.subject_id}"
                        break
                row.append(text)
            rows.append(row)
        return rows

    for d in range(days):
        rows.append([label(d)] + [""] * periods)
    return rows


def rows_to_csv(rows: List[List[str]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerows(rows)
    return buf.getvalue()
