"""
Base model configuration
Shared pydantic settings for every daytrace model
"""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel as PydanticBaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from daytrace.core.timeutils import ensure_utc


class BaseModel(PydanticBaseModel):
    """Base model with camelCase conversion.

    This base model configuration:
    - Accepts camelCase payloads (store rows, client JSON) for snake_case python fields
    - Forbids unknown fields to ensure type safety
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def model_dump(self, **kwargs):
        """Override model_dump to always use aliases (camelCase) by default."""
        kwargs.setdefault("by_alias", True)
        return super().model_dump(**kwargs)


# Naive datetimes are taken as UTC, aware ones converted to UTC
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
