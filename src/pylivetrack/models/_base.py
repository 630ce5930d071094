"""Base model for records exchanged through the location store.

Every store model inherits from :class:`LiveTrackBaseModel` which
provides:

* ``alias_generator=to_camel`` so the camelCase keys used on the wire
  (``isTracking``, ``driverName``) map to snake_case fields.
* A ``model_validator(mode="before")`` that drops empty values
  (``None``, ``""``, NaN) so the field default is used.
* :meth:`LiveTrackBaseModel.to_wire` which dumps by alias and omits
  fields that were never set, producing a merge patch.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return isinstance(value, float) and math.isnan(value)


def coerce_epoch_ms(value: Any) -> Any:
    """Coerce numeric strings and floats to integer epoch milliseconds.

    Values that cannot be interpreted are returned unchanged so pydantic
    reports them.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return value
    return value


class LiveTrackBaseModel(BaseModel):
    """Base for store record models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if not _is_empty(value)}

    def to_wire(self) -> dict[str, Any]:
        """Dump with wire (camelCase) keys.

        Fields left unset or ``None`` are omitted, so a partially built
        model is a valid merge patch.
        """
        return self.model_dump(by_alias=True, exclude_none=True, exclude_unset=True)
