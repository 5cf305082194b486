from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Kudoer(BaseModel):
    """An athlete who gave kudos on an activity, as returned by /activities/{id}/kudos."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    firstname: str = ""
    lastname: str = ""

    @field_validator("firstname", "lastname", mode="before")
    @classmethod
    def blank_if_missing(cls, v):
        return "" if v is None else v

    @property
    def key(self) -> str:
        """Display-name key used for aggregation."""
        return f"{self.firstname} {self.lastname}".strip()


class Activity(BaseModel):
    """Summary activity from /athlete/activities. Distance is in meters."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int
    name: str = ""
    type: str = ""
    distance: float = 0.0
    moving_time: int = 0
    start_date: Optional[datetime] = None
    kudos_count: int = 0

    @field_validator("name", "type", mode="before")
    @classmethod
    def blank_if_missing(cls, v):
        return "" if v is None else v

    @field_validator("distance", "moving_time", mode="before")
    @classmethod
    def zero_if_missing(cls, v):
        return 0 if v is None else v

    @property
    def distance_km(self) -> float:
        return self.distance / 1000


class ActivityWithKudoers(Activity):
    kudoers: List[Kudoer] = Field(default_factory=list)

    @field_validator("kudoers", mode="before")
    @classmethod
    def empty_if_missing(cls, v):
        return [] if v is None else v
