"""
Location Learning Schemas.

Areas are lowercase names tagged with a granularity. Relationships are
directed edges between two areas of the same granularity; clusters group
areas that keep appearing together in the same analyses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from propintel.clock import as_naive_utc


class AreaType(StrEnum):
    URBANISATION = "urbanisation"
    SUBURB = "suburb"
    STREET = "street"
    CITY = "city"


@dataclass(frozen=True)
class Area:
    name: str
    type: AreaType


class LocationComponents(BaseModel):
    """Up to four location parts recovered from one address."""
    urbanisation: Optional[str] = None
    suburb: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None

    def areas(self) -> list[Area]:
        found = []
        for area_type in AreaType:
            value = getattr(self, area_type.value)
            if value:
                found.append(Area(name=value, type=area_type))
        return found


class _Timestamped(BaseModel):

    @field_validator("*", mode="after")
    @classmethod
    def normalize_datetimes(cls, v):
        if isinstance(v, datetime):
            return as_naive_utc(v)
        return v


class LocationRelationship(_Timestamped):
    id: str
    source_area: str
    target_area: str
    relationship_type: AreaType
    frequency: int = 0
    last_seen: datetime
    confidence: float = Field(default=0.1, ge=0, le=1)    # min(1, frequency / 5)


class UrbanisationPattern(_Timestamped):
    id: str                                             # accent-folded name
    name: str
    aliases: list[str] = Field(default_factory=list)
    frequency: int = 0
    first_seen: datetime
    last_seen: datetime
    common_streets: list[str] = Field(default_factory=list)
    nearby_areas: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.1, ge=0, le=1)    # min(1, frequency / 10)


class GeographicCluster(_Timestamped):
    id: str
    center_area: str
    member_areas: list[str] = Field(default_factory=list)
    average_distance: float = 0.0
    frequency: int = 0
    last_updated: datetime


class LocationLearningState(_Timestamped):
    id: str = "location-learning"
    analysis_count: int = 0
    last_updated: Optional[datetime] = None


class LocationStats(BaseModel):
    total_analyses: int = 0
    total_relationships: int = 0
    total_urbanisations: int = 0
    total_clusters: int = 0
    last_updated: Optional[datetime] = None
