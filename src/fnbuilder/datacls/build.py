import json
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .. import constants


class BuildConfig(BaseModel):
    """
    Class describes the image a build produces, written into the archive
    as the builder config entry.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Image reference.
    image: str
    # Extra build arguments for the Dockerfile.
    build_args: Optional[Dict[str, str]] = Field(default=None, alias="buildArgs")
    # Platforms for multi-arch builds.
    platforms: Optional[List[str]] = None

    def to_bytes(self) -> bytes:
        """Serialize to the JSON document the builder expects, empty fields omitted."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data = {k: v for k, v in data.items() if k == "image" or v}
        return json.dumps(data, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "BuildConfig":
        return cls.model_validate_json(payload)


class BuildResult(BaseModel):
    """
    Class describes one build event reported by the builder.

    The builder writes an event without log lines as `"log": null`, a null
    field reads as its empty default.
    """
    log: List[str] = Field(default_factory=list)
    image: str = ""
    status: str = ""

    @field_validator("log", mode="before")
    @classmethod
    def _null_log(cls, v):
        return [] if v is None else v

    @field_validator("image", "status", mode="before")
    @classmethod
    def _null_text(cls, v):
        return "" if v is None else v

    @property
    def is_terminal(self) -> bool:
        return self.status in constants.TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == "success"
