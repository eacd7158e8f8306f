# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Base Pydantic model configuration for all access-control models.

Requests, decisions, grants and workflow records are value objects: they
are built once per call or per state transition and never mutated in
place. State transitions produce new instances with ``model_copy``.
"""

from datetime import datetime, timezone

from beartype import beartype
from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


@beartype
class BaseModelConfig(BaseModel):
    """Base model with strict configuration for all domain entities.

    Enforces:
    - Immutability (frozen=True)
    - No extra fields allowed (extra="forbid")
    - Validation on assignment
    - Automatic whitespace stripping
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


@beartype
def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@beartype
class TimestampedModel(BaseModelConfig):
    """Base model with a timezone-aware creation timestamp."""

    created_at: AwareDatetime = Field(
        default_factory=utc_now, description="Timestamp when the record was created"
    )
