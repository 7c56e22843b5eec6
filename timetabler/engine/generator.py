import logging
import time
from typing import Optional

from timetabler.engine.assigner import GreedyAssigner
from timetabler.engine.diagnostics import compute_diagnostics
from timetabler.engine.index import build_index
from timetabler.engine.local_search import SwapOptimizer
from timetabler.engine.requirements import flatten_requirements
from timetabler.engine.rng import DEFAULT_SEED, LcgRandom
from timetabler.models.entities import GenerationResult, LearnedPenalties, PenaltyWeights, SchoolConfig

logger = logging.getLogger(__name__)

DEFAULT_OPTIMIZE_ITERATIONS = 200


def generate_timetable(
    config: SchoolConfig,
    seed: int = DEFAULT_SEED,
    optimize_iterations: int = DEFAULT_OPTIMIZE_ITERATIONS,
    weights: Optional[PenaltyWeights] = None,
    learned: Optional[LearnedPenalties] = None,
    rng: Optional[LcgRandom] = None,
) -> GenerationResult:
    """
    Generate a weekly timetable for every class.

    Pipeline:
    1. Index subjects, teachers and resources
    2. Flatten class demand into ordered requirements
    3. Greedy assignment (initial timetable)
    4. Seeded swap optimization; skipped when ``optimize_iterations`` is 0
    5. Fresh diagnostics on the final timetable

    Args:
        config: School configuration, assumed already validated
        seed: Reproducibility key for the optimizer's generator
        optimize_iterations: Swap budget (0 disables optimization)
        weights: Soft-constraint penalty weights
        learned: Per-period penalties from edit history, if any
        rng: Explicit generator; overrides ``seed`` when given

    Returns:
        GenerationResult with the timetable and its diagnostics. Unplaceable
        demand shows up as unassigned markers, never as an exception.
    """
    started = time.perf_counter()
    index = build_index(config)
    requirements = flatten_requirements(config, index)
    logger.info(
        f"Generating timetable: {len(config.classes)} classes, {len(config.teachers)} teachers, "
        f"{len(requirements)} requirements"
    )

    assigner = GreedyAssigner(config, index)
    failed = assigner.run(requirements)
    logger.info(f"Greedy pass complete: {len(requirements) - failed} placed, {failed} unassigned")

    iterations = max(0, optimize_iterations or 0)
    if iterations > 0:
        optimizer = SwapOptimizer(
            assigner.timetable,
            config,
            index=index,
            teacher_schedule=assigner.teacher_schedule,
            resource_schedule=assigner.resource_schedule,
            weights=weights,
            learned=learned,
            rng=rng or LcgRandom(seed),
        )
        best = optimizer.optimize(iterations)
        logger.info(
            f"Optimization complete: {optimizer.accepted}/{optimizer.attempted} swaps accepted, penalty={best}"
        )

    diagnostics = compute_diagnostics(assigner.timetable, config, weights, learned)
    diagnostics.time_taken_ms = round((time.perf_counter() - started) * 1000, 3)
    logger.info(
        f"Timetable generated: penalty={diagnostics.penalty_score}, "
        f"unassigned={diagnostics.unassigned_count}, time={diagnostics.time_taken_ms}ms"
    )
    return GenerationResult(timetable=assigner.timetable, diagnostics=diagnostics)
