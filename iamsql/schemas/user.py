"""
schemas/user.py
---------------
Pydantic request models for user provisioning.

Security note:
  - Passwords never travel through these models; they are set through the
    credential service only.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class UserUpdate(BaseModel):
    id: str = Field(..., min_length=1, max_length=255, description="User login")
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    mails: List[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        return v.strip()

    @field_validator("mails")
    @classmethod
    def drop_blank_mails(cls, v: List[str]) -> List[str]:
        return [m.strip() for m in v if m and m.strip()]


class UserCreate(UserUpdate):
    """Used by provisioning to create a user inside an existing company."""
    company: str = Field(..., min_length=1, max_length=255, description="Company identifier")
