"""
App model — the identity of a deployable app, loaded from app.yaml.

The app root holds ``app.yaml`` and a ``components/`` directory with
one sub-directory per component.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kubeship.core.naming import is_valid_name


class App(BaseModel):
    """Declared app identity (``app.yaml``)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    title: str = ""
    description: str = ""
    container_registry: str = Field(default="", alias="containerRegistry")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not is_valid_name(value):
            raise ValueError(f"invalid app name '{value}'")
        return value
