from pydantic import BaseModel, ConfigDict, Field


class CreateMatchRequest(BaseModel):
    """Body of POST /matches. The ticket identifies the challenger."""

    model_config = ConfigDict(extra="forbid")

    ticket: str = Field(min_length=1, max_length=2000)
    opponent_id: str = Field(min_length=1, max_length=100)
    total_rounds: int | None = Field(default=None, ge=1, le=9, strict=True)


class CreateMatchResponse(BaseModel):
    match_id: str
    goal_time: int
    status: str
