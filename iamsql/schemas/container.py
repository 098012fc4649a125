"""
schemas/container.py
--------------------
Pydantic request models for companies and groups.

The DN syntax itself is validated by the hierarchy model when the container
is created, so a malformed DN surfaces as the directory's ValidationError.
"""

from pydantic import BaseModel, Field, field_validator


class ContainerCreate(BaseModel):
    dn: str = Field(
        ...,
        min_length=1,
        max_length=1024,
        examples=["ou=eng,ou=acme,ou=companies"],
        description="Distinguished name of the new container",
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        examples=["Eng"],
        description="Human readable name, normalized to build the identifier",
    )

    @field_validator("dn", "name")
    @classmethod
    def strip_value(cls, v: str) -> str:
        return v.strip()
