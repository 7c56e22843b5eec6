from typing import Any, Dict, List, Optional
from dataclasses import asdict
import logging

import redis
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field, StrictBool, field_validator, model_validator
from sqlalchemy.orm import Session

from timetabler.config.settings import get_settings
from timetabler.engine.diagnostics import compute_diagnostics
from timetabler.engine.generator import generate_timetable
from timetabler.engine.learning import EditLog, preference_penalties
from timetabler.models.entities import (
    LearnedPenalties,
    Resource,
    SchoolClass,
    SchoolConfig,
    Subject,
    Teacher,
    timetable_from_dict,
)
from timetabler.storage.cache import TimetableCache, get_cache
from timetabler.storage.database import get_db
from timetabler.storage.repositories import EditLogRepository, SchoolConfigRepository, TimetableRepository
from timetabler.utils.benchmarking import benchmark_iterations
from timetabler.utils.export import VIEWS, generate_csv_rows, rows_to_csv

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

Matrix = List[List[StrictBool]]
GridJSON = List[List[Optional[Dict[str, Any]]]]


def _check_matrix(label: str, matrix: Matrix, days: int, periods: int) -> None:
    if len(matrix) != days:
        raise ValueError(f"{label}.availability: expected {days} days")
    for d, row in enumerate(matrix):
        if len(row) != periods:
            raise ValueError(f"{label}.availability[{d}]: expected {periods} periods")


class SubjectDTO(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    weekly_periods: int = Field(0, ge=0)
    lab: bool = False
    double_period: bool = False
    resource_type: Optional[str] = None

    def to_domain(self) -> Subject:
        return Subject(**self.model_dump())


class TeacherDTO(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    subjects: List[str] = Field(..., min_length=1)
    max_load: int = Field(..., gt=0)
    availability: Matrix

    def to_domain(self) -> Teacher:
        return Teacher(
            id=self.id,
            name=self.name,
            subjects=tuple(self.subjects),
            max_load=self.max_load,
            availability=self.availability,
        )


class ClassDTO(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    subjects: Dict[str, int]

    @field_validator("subjects")
    def validate_counts(cls, v: Dict[str, int]):
        """Each class needs at least one subject and non-negative counts."""
        if not v:
            raise ValueError("subjects mapping must not be empty")
        for sid, count in v.items():
            if count < 0:
                raise ValueError(f"subjects['{sid}'] must be >= 0")
        return v

    def to_domain(self) -> SchoolClass:
        return SchoolClass(id=self.id, name=self.name, subjects=dict(self.subjects))


class ResourceDTO(BaseModel):
    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    availability: Optional[Matrix] = None

    def to_domain(self) -> Resource:
        return Resource(id=self.id, type=self.type, availability=self.availability)


class SchoolConfigDTO(BaseModel):
    working_days: int = Field(..., ge=1)
    periods_per_day: int = Field(..., ge=1)
    subjects: List[SubjectDTO] = Field(..., min_length=1)
    teachers: List[TeacherDTO] = Field(..., min_length=1)
    classes: List[ClassDTO] = Field(..., min_length=1)
    resources: List[ResourceDTO] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_availability_shape(self):
        """Every availability matrix must be working_days x periods_per_day."""
        for i, t in enumerate(self.teachers):
            _check_matrix(f"teachers[{i}]", t.availability, self.working_days, self.periods_per_day)
        for i, r in enumerate(self.resources):
            if r.availability is not None:
                _check_matrix(f"resources[{i}]", r.availability, self.working_days, self.periods_per_day)
        return self

    def to_domain(self) -> SchoolConfig:
        return SchoolConfig(
            working_days=self.working_days,
            periods_per_day=self.periods_per_day,
            subjects=[s.to_domain() for s in self.subjects],
            teachers=[t.to_domain() for t in self.teachers],
            classes=[c.to_domain() for c in self.classes],
            resources=[r.to_domain() for r in self.resources],
        )


class TimetableEntryDTO(BaseModel):
    subject_id: str
    teacher_id: Optional[str] = None
    resource_id: Optional[str] = None
    double: bool = False
    head_of_double: bool = False
    unassigned: bool = False


class DiagnosticsDTO(BaseModel):
    unassigned_count: int
    penalty_score: int
    teacher_loads: Dict[str, int]
    penalty_breakdown: Dict[str, int] = Field(default_factory=dict)
    time_taken_ms: Optional[float] = None


class GenerateResponse(BaseModel):
    timetable: Dict[str, GridJSON]
    diagnostics: DiagnosticsDTO
    cached: bool = False


class PenaltyRequest(BaseModel):
    config: SchoolConfigDTO
    timetable: Dict[str, List[List[Optional[TimetableEntryDTO]]]]
    learned_penalties: Optional[Dict[str, Dict[str, Dict[int, int]]]] = None

    @model_validator(mode="after")
    def validate_grid_shape(self):
        """Grids must match the configured week."""
        days, periods = self.config.working_days, self.config.periods_per_day
        for class_id, grid in self.timetable.items():
            if len(grid) != days or any(len(row) != periods for row in grid):
                raise ValueError(f"timetable['{class_id}'] must be {days} x {periods}")
        return self


class SaveTimetableRequest(BaseModel):
    name: str = Field(..., min_length=1)
    timetable: Dict[str, GridJSON]
    diagnostics: Optional[Dict[str, Any]] = None


class TimetableMeta(BaseModel):
    id: str
    name: str
    saved_at: Any


class StoredTimetable(TimetableMeta):
    timetable: Dict[str, GridJSON]
    diagnostics: Optional[Dict[str, Any]] = None


class CellRefDTO(BaseModel):
    subject_id: Optional[str] = None
    teacher_id: Optional[str] = None


class EditLogDTO(BaseModel):
    class_id: str
    day: int = Field(..., ge=0)
    period: int = Field(..., ge=0)
    before: Optional[CellRefDTO] = None
    after: Optional[CellRefDTO] = None
    reason: str = "manual"

    def to_domain(self) -> EditLog:
        return EditLog(
            class_id=self.class_id,
            day=self.day,
            period=self.period,
            before=self.before.model_dump() if self.before else None,
            after=self.after.model_dump() if self.after else None,
            reason=self.reason,
        )


class BenchmarkRequest(BaseModel):
    config: SchoolConfigDTO
    budgets: List[int] = Field(default_factory=lambda: [0, 200, 1000], min_length=1)
    seed: int = 42

    @field_validator("budgets")
    def validate_budgets(cls, v: List[int]):
        if any(b < 0 or b > settings.max_optimize_iterations for b in v):
            raise ValueError(f"budgets must be in [0, {settings.max_optimize_iterations}]")
        return v


class BenchmarkEntry(BaseModel):
    optimize_iterations: int
    time_seconds: float
    penalty_score: int
    unassigned_count: int


class BenchmarkResponse(BaseModel):
    results: List[BenchmarkEntry]


def _learned_from_db(db: Session) -> LearnedPenalties:
    return preference_penalties(
        EditLogRepository(db).list_all(),
        min_count=settings.learned_min_count,
        teacher_weight=settings.learned_teacher_weight,
        subject_weight=settings.learned_subject_weight,
    )


@router.put("/school", summary="Store the school configuration")
def save_school(req: SchoolConfigDTO, db: Session = Depends(get_db)):
    SchoolConfigRepository(db).save(req.to_domain())
    logger.info(f"School configuration saved: {len(req.classes)} classes, {len(req.teachers)} teachers")
    return {"status": "saved"}


@router.get("/school", summary="Load the stored school configuration")
def load_school(db: Session = Depends(get_db)):
    config = SchoolConfigRepository(db).get()
    if config is None:
        raise HTTPException(status_code=404, detail="No school configuration stored")
    return config.to_dict()


@router.post("/timetable/generate", response_model=GenerateResponse, summary="Generate a timetable")
def generate(
    req: Optional[SchoolConfigDTO] = Body(None),
    seed: int = Query(settings.default_seed, description="Optimizer seed"),
    optimize_iterations: int = Query(
        settings.default_optimize_iterations,
        ge=0,
        le=settings.max_optimize_iterations,
        description="Swap budget; 0 returns the greedy result",
    ),
    use_learned_penalties: bool = Query(False, description="Weigh in penalties learned from manual edits"),
    db: Session = Depends(get_db),
    cache: TimetableCache = Depends(get_cache),
):
    """
    Generate a weekly timetable for every class.

    **Algorithm**:
    1. Validate input (or load the stored configuration when no body is sent)
    2. Check cache for an identical request
    3. Greedy assignment followed by seeded swap optimization
    4. Cache the result

    **Error Handling:**
    - 404: No body and no stored configuration
    - 422: Invalid configuration (bad availability shape, empty lists, etc.)

    Infeasible demand is not an error: it is reported through
    `diagnostics.unassigned_count`.
    """
    if req is not None:
        config = req.to_domain()
    else:
        config = SchoolConfigRepository(db).get()
        if config is None:
            raise HTTPException(status_code=404, detail="No school configuration stored")

    weights = settings.penalty_weights()
    learned = _learned_from_db(db) if use_learned_penalties else None
    logger.info(
        f"Generate request: {len(config.classes)} classes, seed={seed}, "
        f"iterations={optimize_iterations}, learned={learned is not None}"
    )

    key = TimetableCache.hash_request(
        config.to_dict(),
        seed,
        optimize_iterations,
        extra={"weights": asdict(weights), "learned": learned.to_dict() if learned else None},
    )
    try:
        cached = cache.get(key)
    except redis.RedisError as exc:
        logger.warning(f"Cache unavailable, generating without it: {exc}")
        cached = None
    if cached:
        logger.info("Cache hit")
        return {**cached, "cached": True}

    result = generate_timetable(
        config,
        seed=seed,
        optimize_iterations=optimize_iterations,
        weights=weights,
        learned=learned,
    ).to_dict()

    try:
        cache.set(key, result)
    except redis.RedisError as exc:
        logger.warning(f"Could not cache timetable: {exc}")

    return {**result, "cached": False}


@router.post("/timetable/penalty", response_model=DiagnosticsDTO, summary="Score an existing timetable")
def penalty(req: PenaltyRequest):
    """Diagnostics for a timetable, e.g. after manual edits, without regenerating."""
    timetable = timetable_from_dict(
        {cid: [[c.model_dump() if c else None for c in row] for row in grid] for cid, grid in req.timetable.items()}
    )
    learned = LearnedPenalties.from_dict(req.learned_penalties) if req.learned_penalties else None
    diagnostics = compute_diagnostics(timetable, req.config.to_domain(), settings.penalty_weights(), learned)
    return diagnostics.to_dict()


@router.post("/timetables", response_model=TimetableMeta, summary="Save a named timetable")
def save_timetable(req: SaveTimetableRequest, db: Session = Depends(get_db)):
    meta = TimetableRepository(db).save(req.name, req.timetable, req.diagnostics)
    logger.info(f"Timetable saved: {meta['id']} ({req.name})")
    return meta


@router.get("/timetables", response_model=List[TimetableMeta], summary="List saved timetables")
def list_timetables(db: Session = Depends(get_db)):
    return TimetableRepository(db).list_all()


@router.get("/timetables/{timetable_id}", response_model=StoredTimetable, summary="Load a saved timetable")
def get_timetable(timetable_id: str, db: Session = Depends(get_db)):
    stored = TimetableRepository(db).get(timetable_id)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"Timetable {timetable_id} not found")
    return stored


@router.delete("/timetables/{timetable_id}", summary="Delete a saved timetable")
def delete_timetable(timetable_id: str, db: Session = Depends(get_db)):
    if not TimetableRepository(db).delete(timetable_id):
        raise HTTPException(status_code=404, detail=f"Timetable {timetable_id} not found")
    logger.info(f"Timetable deleted: {timetable_id}")
    return {"status": "deleted"}


@router.get("/timetables/{timetable_id}/export", summary="Export a timetable view as CSV")
def export_timetable(
    timetable_id: str,
    view: str = Query("class", description="class, teacher or room"),
    target: str = Query(..., description="Class, teacher or resource id"),
    db: Session = Depends(get_db),
):
    if view not in VIEWS:
        raise HTTPException(status_code=400, detail=f"Unknown view '{view}'")
    stored = TimetableRepository(db).get(timetable_id)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"Timetable {timetable_id} not found")

    rows = generate_csv_rows(timetable_from_dict(stored["timetable"]), view, target)
    filename = f"{stored['name']}-{view}-{target}.csv"
    return Response(
        content=rows_to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/edits", summary="Log a manual timetable edit")
def log_edit(req: EditLogDTO, db: Session = Depends(get_db)):
    EditLogRepository(db).log(req.to_domain())
    return {"status": "logged"}


@router.get("/learning/penalties", summary="Penalties learned from manual edits")
def learned_penalties(db: Session = Depends(get_db)):
    return _learned_from_db(db).to_dict()


@router.post("/timetable/benchmark", response_model=BenchmarkResponse, summary="Compare optimizer budgets")
def benchmark(req: BenchmarkRequest):
    """
    Run generation with each budget on the same configuration.

    **Returns:**
    - Timing, penalty and unassigned count per budget
    """
    logger.info(f"Benchmark request: budgets={req.budgets}")
    results = benchmark_iterations(
        req.config.to_domain(), req.budgets, seed=req.seed, weights=settings.penalty_weights()
    )
    return {
        "results": [
            BenchmarkEntry(
                optimize_iterations=r.optimize_iterations,
                time_seconds=r.time_seconds,
                penalty_score=r.penalty_score,
                unassigned_count=r.unassigned_count,
            )
            for r in results
        ]
    }
