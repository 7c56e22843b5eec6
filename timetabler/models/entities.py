from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


Grid = List[List[Optional["TimetableEntry"]]]
Timetable = Dict[str, Grid]


@dataclass(frozen=True)
class Subject:
    id: str
    name: str
    weekly_periods: int = 0
    lab: bool = False
    double_period: bool = False
    resource_type: Optional[str] = None


@dataclass(frozen=True)
class Teacher:
    id: str
    name: str
    subjects: Tuple[str, ...] = ()
    max_load: int = 0
    availability: List[List[bool]] = None  # [day][period]


@dataclass(frozen=True)
class SchoolClass:
    id: str
    name: str
    subjects: Dict[str, int] = field(default_factory=dict)  # subject id -> weekly periods


@dataclass(frozen=True)
class Resource:
    id: str
    type: str
    availability: Optional[List[List[bool]]] = None  # None means always available


@dataclass(frozen=True)
class SchoolConfig:
    working_days: int
    periods_per_day: int
    subjects: List[Subject] = field(default_factory=list)
    teachers: List[Teacher] = field(default_factory=list)
    classes: List[SchoolClass] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchoolConfig":
        return cls(
            working_days=data["working_days"],
            periods_per_day=data["periods_per_day"],
            subjects=[
                Subject(
                    id=s["id"],
                    name=s.get("name", s["id"]),
                    weekly_periods=s.get("weekly_periods", 0),
                    lab=s.get("lab", False),
                    double_period=s.get("double_period", False),
                    resource_type=s.get("resource_type"),
                )
                for s in data.get("subjects", [])
            ],
            teachers=[
                Teacher(
                    id=t["id"],
                    name=t.get("name", t["id"]),
                    subjects=tuple(t.get("subjects", ())),
                    max_load=t.get("max_load", 0),
                    availability=t.get("availability"),
                )
                for t in data.get("teachers", [])
            ],
            classes=[
                SchoolClass(id=c["id"], name=c.get("name", c["id"]), subjects=dict(c.get("subjects", {})))
                for c in data.get("classes", [])
            ],
            resources=[
                Resource(id=r["id"], type=r["type"], availability=r.get("availability"))
                for r in data.get("resources", [])
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "working_days": self.working_days,
            "periods_per_day": self.periods_per_day,
            "subjects": [
                {
                    "id": s.id,
                    "name": s.name,
                    "weekly_periods": s.weekly_periods,
                    "lab": s.lab,
                    "double_period": s.double_period,
                    "resource_type": s.resource_type,
                }
                for s in self.subjects
            ],
            "teachers": [
                {
                    "id": t.id,
                    "name": t.name,
                    "subjects": list(t.subjects),
                    "max_load": t.max_load,
                    "availability": t.availability,
                }
                for t in self.teachers
            ],
            "classes": [{"id": c.id, "name": c.name, "subjects": dict(c.subjects)} for c in self.classes],
            "resources": [{"id": r.id, "type": r.type, "availability": r.availability} for r in self.resources],
        }


@dataclass(frozen=True)
class Requirement:
    class_id: str
    subject_id: str
    requires_double: bool = False
    resource_type: Optional[str] = None
    weekly_periods: int = 0  # sort priority only

    @property
    def span(self) -> int:
        return 2 if self.requires_double else 1


@dataclass(frozen=True)
class TimetableEntry:
    """
    One cell of a class grid.

    Either an assignment (teacher set) or an unassigned marker recording
    demand that could not be placed. Both halves of a double period carry
    ``double=True``; only the first has ``head_of_double=True``.
    """

    subject_id: str
    teacher_id: Optional[str] = None
    resource_id: Optional[str] = None
    double: bool = False
    head_of_double: bool = False
    unassigned: bool = False

    @property
    def span(self) -> int:
        return 2 if self.double else 1

    @property
    def is_tail(self) -> bool:
        return self.double and not self.head_of_double

    def to_dict(self) -> Dict[str, Any]:
        if self.unassigned:
            data: Dict[str, Any] = {"subject_id": self.subject_id, "unassigned": True}
        else:
            data = {"subject_id": self.subject_id, "teacher_id": self.teacher_id}
            if self.resource_id is not None:
                data["resource_id"] = self.resource_id
        if self.double:
            data["double"] = True
            data["head_of_double"] = self.head_of_double
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["TimetableEntry"]:
        if data is None:
            return None
        return cls(
            subject_id=data["subject_id"],
            teacher_id=data.get("teacher_id"),
            resource_id=data.get("resource_id"),
            double=data.get("double", False),
            head_of_double=data.get("head_of_double", False),
            unassigned=data.get("unassigned", False),
        )


@dataclass(frozen=True)
class PenaltyWeights:
    unassigned: int = 20
    adjacency: int = 10
    idle_gap: int = 5


@dataclass(frozen=True)
class LearnedPenalties:
    """Per-period penalties derived from manual edit history."""

    teacher_periods: Dict[str, Dict[int, int]] = field(default_factory=dict)
    subject_periods: Dict[str, Dict[int, int]] = field(default_factory=dict)

    def for_cell(self, entry: TimetableEntry, period: int) -> int:
        penalty = 0
        if entry.teacher_id is not None:
            penalty += self.teacher_periods.get(entry.teacher_id, {}).get(period, 0)
        penalty += self.subject_periods.get(entry.subject_id, {}).get(period, 0)
        return penalty

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teacher_periods": {k: dict(v) for k, v in self.teacher_periods.items()},
            "subject_periods": {k: dict(v) for k, v in self.subject_periods.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnedPenalties":
        return cls(
            teacher_periods={k: {int(p): v for p, v in m.items()} for k, m in data.get("teacher_periods", {}).items()},
            subject_periods={k: {int(p): v for p, v in m.items()} for k, m in data.get("subject_periods", {}).items()},
        )


@dataclass
class Diagnostics:
    unassigned_count: int = 0
    penalty_score: int = 0
    teacher_loads: Dict[str, int] = field(default_factory=dict)
    penalty_breakdown: Dict[str, int] = field(default_factory=dict)
    time_taken_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "unassigned_count": self.unassigned_count,
            "penalty_score": self.penalty_score,
            "teacher_loads": dict(self.teacher_loads),
            "penalty_breakdown": dict(self.penalty_breakdown),
        }
        if self.time_taken_ms is not None:
            data["time_taken_ms"] = self.time_taken_ms
        return data


@dataclass
class GenerationResult:
    timetable: Timetable
    diagnostics: Diagnostics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timetable": timetable_to_dict(self.timetable),
            "diagnostics": self.diagnostics.to_dict(),
        }


def make_empty_grid(days: int, periods: int) -> Grid:
    return [[None] * periods for _ in range(days)]


def clone_grid(grid: Grid) -> Grid:
    return [list(row) for row in grid]


def timetable_to_dict(timetable: Timetable) -> Dict[str, List[List[Optional[Dict[str, Any]]]]]:
    return {
        class_id: [[e.to_dict() if e is not None else None for e in row] for row in grid]
        for class_id, grid in timetable.items()
    }


def timetable_from_dict(data: Dict[str, List[List[Optional[Dict[str, Any]]]]]) -> Timetable:
    return {
        class_id: [[TimetableEntry.from_dict(cell) for cell in row] for row in grid]
        for class_id, grid in data.items()
    }
