"""Shared model base and identifier helpers."""

from __future__ import annotations

import time
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a fresh entity identifier."""
    return str(uuid.uuid4())


def new_schema_field_id() -> str:
    """Generate a data-store schema field id (``field_<ms>_<rand>``)."""
    return f"field_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


class WireModel(BaseModel):
    """Base for entities exchanged as camelCase JSON.

    Attributes are snake_case in Python and camelCase on the wire. Unknown
    keys are preserved so partially-known payloads round-trip unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump as a plain dict using wire (camelCase) keys."""
        return self.model_dump(by_alias=True, mode="json")
