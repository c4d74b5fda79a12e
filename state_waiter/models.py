from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Synthesized locally; the remote API reports these as error conditions
STATUS_NOT_FOUND = "NOT_FOUND"
STATUS_UNAVAILABLE = "UNAVAILABLE"


class StatusSnapshot(BaseModel):
    state: str
    payload: Any = None
    elapsed_time: float = 0.0


class StatusPollingConfig(BaseModel):
    initial_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=10.0, gt=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    jitter: bool = True
    fetch_timeout: float = Field(default=30.0, gt=0)
    delay: float = Field(default=0.0, ge=0)  # before the first poll
    continuous_target_occurrence: int = Field(default=1, ge=1)


class StateChangeConfig(BaseModel):
    """Everything a single wait needs: state vocabulary, fetch function and deadline."""

    model_config = ConfigDict(frozen=True)

    pending: frozenset[str] = frozenset()
    target: frozenset[str]
    fetch: Callable[[], Awaitable[StatusSnapshot]]
    timeout: float = Field(gt=0)
    polling: StatusPollingConfig = Field(default_factory=StatusPollingConfig)
    description: str = "resource"

    @model_validator(mode="after")
    def check_states(self) -> "StateChangeConfig":
        if not self.target:
            raise ValueError("at least one target state is required")
        overlap = self.pending & self.target
        if overlap:
            raise ValueError(
                f"pending and target states must not overlap: {sorted(overlap)}"
            )
        return self
