"""Queue payload models for the enrichment and cleanup pipelines.

Payloads arrive with the camelCase keys producers have always sent
(``beerId``, ``beerName``, ``brewDescription``); snake_case names are
accepted too. A payload that fails validation is a terminal failure and is
dead-lettered by the consumer rather than retried.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from taproom.core.errors import ValidationError


class _Job(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
        frozen=True,
    )

    def to_payload(self) -> dict[str, Any]:
        """Wire form (camelCase keys, unset optionals omitted)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class EnrichmentJob(_Job):
    """Request to look up the ABV of one beer."""

    beer_id: str = Field(..., alias="beerId", min_length=1)
    beer_name: str = Field(..., alias="beerName")
    brewer: str | None = None
    description: str | None = Field(default=None, alias="brewDescription")
    priority: str | None = None


class CleanupJob(_Job):
    """Request to clean one beer's menu description. ``description`` may be empty."""

    beer_id: str = Field(..., alias="beerId", min_length=1)
    beer_name: str = Field(..., alias="beerName")
    description: str = Field(..., alias="brewDescription")
    brewer: str | None = None


JobT = TypeVar("JobT", bound=_Job)


def parse_job(model: type[JobT], payload: Any) -> JobT:
    """Validate ``payload`` as ``model``.

    Raises:
        ValidationError: the payload is not a valid job.
    """
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(
            f"Invalid {model.__name__} payload: {', '.join(fields) or 'not an object'}",
            cause=e,
        ).with_context(invalid_fields=fields) from e
