from pydantic import BaseModel, Field


class TimerStart(BaseModel):
    duration_seconds: int = Field(..., gt=0, le=24 * 3600)


class TimerOut(BaseModel):
    lot_id: int
    end_at_ms: int
    remaining_seconds: int
    remaining_hms: str
    running: bool
    resync_seconds: int
