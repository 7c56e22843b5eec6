from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from timetabler.models.entities import PenaltyWeights


class Settings(BaseSettings):
    app_name: str = "Timetabler"
    debug: bool = True
    database_url: str = Field("sqlite:///./timetabler.db", validation_alias="DATABASE_URL")
    redis_url: str = Field("redis://localhost:6379/0", validation_alias="REDIS_URL")
    cache_ttl_seconds: int = 3600

    default_seed: int = 42
    default_optimize_iterations: int = 200
    max_optimize_iterations: int = 20000

    # soft-constraint weights
    penalty_unassigned: int = 20
    penalty_adjacency: int = 10
    penalty_idle_gap: int = 5

    learned_min_count: int = 2
    learned_teacher_weight: int = 5
    learned_subject_weight: int = 3

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def penalty_weights(self) -> PenaltyWeights:
        return PenaltyWeights(
            unassigned=self.penalty_unassigned,
            adjacency=self.penalty_adjacency,
            idle_gap=self.penalty_idle_gap,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
