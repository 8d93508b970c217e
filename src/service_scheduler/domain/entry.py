import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from service_scheduler.cadence import Cadence
from .service import BackgroundService


class EntryState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"
    REMOVED = "removed"


_TRANSITIONS = {
    EntryState.IDLE: {EntryState.STARTING},
    EntryState.STARTING: {EntryState.ACTIVE, EntryState.REMOVED},
    EntryState.ACTIVE: {EntryState.STOPPING},
    EntryState.STOPPING: {EntryState.REMOVED},
    EntryState.REMOVED: set(),
}


class ActiveEntry(BaseModel):
    """
    Bookkeeping for one started service: the instance, its cadence and the
    timer driving its ticks.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., description="Qualified name the service was started with")
    instance: BackgroundService = Field(..., description="The live service instance")
    cadence: Optional[Cadence] = Field(None, description="Parsed cadence, None for run-once services")
    state: EntryState = EntryState.IDLE
    timer: Optional[asyncio.Task] = Field(None, description="Task sleeping until the next fire time")
    current_run: Optional[asyncio.Future] = Field(None, description="The run() invocation in flight, if any")
    started_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    failure_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.state == EntryState.ACTIVE

    def set_state(self, state: EntryState):
        """
        Move the entry to `state`, rejecting transitions the lifecycle does not allow.
        """
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid state transition for '{self.name}': {self.state.value} -> {state.value}")
        self.state = state
        if state == EntryState.ACTIVE:
            self.started_at = datetime.now(timezone.utc)

    def record_run(self, failed: bool = False):
        self.last_run_at = datetime.now(timezone.utc)
        self.run_count += 1
        if failed:
            self.failure_count += 1
