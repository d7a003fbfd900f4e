"""Timing and scoring parameters for a duel."""

from typing import Self

from pydantic import BaseModel, Field, model_validator

from shared.dal.models import DEFAULT_TOTAL_ROUNDS, GOAL_TIME_MAX_MS, GOAL_TIME_MIN_MS


class DuelSettings(BaseModel, frozen=True):
    total_rounds: int = Field(default=DEFAULT_TOTAL_ROUNDS, ge=1)
    countdown_ms: int = Field(default=3000, ge=0)
    next_round_delay_ms: int = Field(default=3000, ge=0)  # round_finished -> next_round_starting
    round_start_delay_ms: int = Field(default=3000, ge=0)  # next_round_starting -> countdown
    round_timeout_ms: int = Field(default=10000, gt=0)  # after the first click of a round
    cleanup_grace_ms: int = Field(default=15000, ge=0)
    goal_time_min_ms: int = Field(default=GOAL_TIME_MIN_MS, ge=GOAL_TIME_MIN_MS, le=GOAL_TIME_MAX_MS)
    goal_time_max_ms: int = Field(default=GOAL_TIME_MAX_MS, ge=GOAL_TIME_MIN_MS, le=GOAL_TIME_MAX_MS)
    stale_match_seconds: float = Field(default=30.0, gt=0)
    stale_challenge_seconds: float = Field(default=300.0, gt=0)
    session_idle_seconds: float = Field(default=1800.0, gt=0)

    @model_validator(mode="after")
    def _check_goal_bounds(self) -> Self:
        if self.goal_time_min_ms > self.goal_time_max_ms:
            raise ValueError("goal_time_min_ms must not exceed goal_time_max_ms")
        return self
