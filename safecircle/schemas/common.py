"""Shared schema pieces: camelCase wire names, the response envelope, coordinates."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire; either is accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(CamelModel, Generic[T]):
    """Uniform response body: ``{success, message?, data?}``."""

    success: bool = True
    message: str | None = None
    data: T | None = None
    count: int | None = None


def check_coordinates(longitude: float, latitude: float) -> None:
    if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
        raise ValueError("Invalid coordinates")


class Location(CamelModel):
    """A point as ``[longitude, latitude]`` plus a free-text address."""

    coordinates: list[float] = Field(..., min_length=2, max_length=2)
    address: str = Field(default="", max_length=500)

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: list[float]) -> list[float]:
        check_coordinates(v[0], v[1])
        return v

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]


class Coordinates(CamelModel):
    longitude: float = Field(ge=-180, le=180)
    latitude: float = Field(ge=-90, le=90)


class UserIdentity(CamelModel):
    """Public identity attached to fan-out events."""

    id: int
    name: str
    profile_photo: str = ""
