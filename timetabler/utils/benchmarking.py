import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from timetabler.engine.generator import generate_timetable
from timetabler.models.entities import PenaltyWeights, SchoolConfig


@dataclass
class BenchmarkResult:
    optimize_iterations: int
    time_seconds: float
    penalty_score: int
    unassigned_count: int


def benchmark_iterations(
    config: SchoolConfig,
    budgets: Sequence[int] = (0, 200, 1000),
    seed: int = 42,
    weights: Optional[PenaltyWeights] = None,
) -> List[BenchmarkResult]:
    """
    Compare optimizer budgets on the same instance.
    Budget 0 is the plain greedy result.
    """
    results = []
    for budget in budgets:
        start = time.time()
        result = generate_timetable(config, seed=seed, optimize_iterations=budget, weights=weights)
        elapsed = time.time() - start
        results.append(BenchmarkResult(
            optimize_iterations=budget,
            time_seconds=elapsed,
            penalty_score=result.diagnostics.penalty_score,
            unassigned_count=result.diagnostics.unassigned_count,
        ))
    return results
