from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


class SchedulerSettings(BaseModel):
    """
    Runtime options of a ServiceManager.
    """
    timezone: str = Field(default="UTC", description="Time zone in which cadence expressions are evaluated")
    offload_sync_run: bool = Field(
        default=True,
        description="Run synchronous run() hooks in a worker thread so they do not block other services"
    )

    @field_validator('timezone')
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone '{v}'") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
