"""
===============================================================================
TARJETA CRC — application/schemas.py
===============================================================================

Responsabilidades:
  - Validar el request de refresh ANTES de cualquier I/O.
  - Normalizar selectores (lower-case, sin duplicados, orden estable).
  - Traducir pydantic.ValidationError a la ValidationError del core.

Colaboradores:
  - application.activity_aggregator.ActivityAggregator.refresh
  - crosscutting.exceptions.ValidationError
===============================================================================
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..crosscutting.exceptions import ValidationError

SELECTOR_DASHBOARD = "dashboard"
SELECTOR_ANALYSIS = "analysis"
SELECTOR_USER = "user"
SELECTOR_ALL = "all"

VALID_SELECTORS = (
    SELECTOR_DASHBOARD,
    SELECTOR_ANALYSIS,
    SELECTOR_USER,
    SELECTOR_ALL,
)


class ActivityRefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    asset_types: tuple[str, ...] = Field(..., alias="assetTypes", min_length=1)
    days: Optional[int] = Field(default=None, ge=1)

    @field_validator("asset_types")
    @classmethod
    def normalizar_selectores(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        normalized: list[str] = []
        for raw in v:
            selector = str(raw).strip().lower()
            if selector not in VALID_SELECTORS:
                raise ValueError(
                    f"asset type inválido: {raw!r} (válidos: {', '.join(VALID_SELECTORS)})"
                )
            if selector not in normalized:
                normalized.append(selector)
        return tuple(normalized)

    def wants(self, selector: str) -> bool:
        return SELECTOR_ALL in self.asset_types or selector in self.asset_types


def parse_refresh_request(
    payload: ActivityRefreshRequest | Mapping[str, Any],
) -> ActivityRefreshRequest:
    """
    Raises:
        ValidationError: si el payload no cumple el schema.
    """
    if isinstance(payload, ActivityRefreshRequest):
        return payload
    try:
        return ActivityRefreshRequest.model_validate(dict(payload))
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        raise ValidationError(
            f"Request de refresh inválido: {details}", original_error=exc
        ) from exc
