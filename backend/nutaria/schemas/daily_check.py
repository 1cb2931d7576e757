from datetime import date, datetime, time
from typing import Literal

from pydantic import BaseModel, Field, field_validator

YesNo = Literal["Yes", "No"]


class DailyCheckItemOut(BaseModel):
    id: int
    category: str
    item_key: str
    item_name: str
    note: str | None
    completed: bool
    completed_at: datetime | None
    completed_by: str | None

    model_config = {"from_attributes": True}


class DailyCheckCategoryOut(BaseModel):
    id: str
    title: str
    description: str
    items: list[DailyCheckItemOut]


class DailyChecklistOut(BaseModel):
    check_date: date
    categories: list[DailyCheckCategoryOut]
    total: int
    completed: int
    remaining: int


class DailyCheckNote(BaseModel):
    note: str | None = Field(None, max_length=2000)


class MetalDetectorCheckSave(BaseModel):
    check_date: date
    check_hour: time
    fe_1_5mm: YesNo
    non_fe_1_5mm: YesNo
    ss_1_5mm: YesNo
    remarks: str | None = None
    corrective_action: str | None = None

    @field_validator("check_hour")
    @classmethod
    def on_the_hour(cls, v: time) -> time:
        if not 8 <= v.hour <= 17 or v.minute or v.second or v.microsecond:
            raise ValueError("check_hour must be on the hour between 08:00 and 17:00")
        return v.replace(tzinfo=None)

    @field_validator("remarks", "corrective_action")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class MetalDetectorCheckOut(BaseModel):
    id: int
    check_date: date
    check_hour: time
    fe_1_5mm: str
    non_fe_1_5mm: str
    ss_1_5mm: str
    remarks: str | None
    corrective_action: str | None
    created_by: str | None
    checked_by: str | None
    checked_at: datetime | None

    model_config = {"from_attributes": True}


class MetalDetectorDayOut(BaseModel):
    check_date: date
    checks: list[MetalDetectorCheckOut]
    # Hours from 08:00 to 17:00 with no reading yet
    missing_hours: list[time]
