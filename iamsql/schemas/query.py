"""
schemas/query.py
----------------
Sort order of the in-memory listings.
"""

from typing import Literal

from pydantic import BaseModel, field_validator


class SortOrder(BaseModel):
    property: str
    direction: Literal["asc", "desc"] = "asc"

    @field_validator("direction", mode="before")
    @classmethod
    def lower_direction(cls, v):
        if isinstance(v, str):
            return v.lower()
        return v

    @property
    def descending(self) -> bool:
        return self.direction == "desc"
