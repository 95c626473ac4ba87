from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, model_validator

from .asset import AssetFilter


class LabelBatchRequest(BaseModel):
    """Either an explicit id list or ``select_all`` with the current listing filters."""

    asset_ids: Optional[list[str]] = None
    select_all: bool = False
    filters: Optional[AssetFilter] = None

    @model_validator(mode="after")
    def _check_selection(self) -> "LabelBatchRequest":
        if self.select_all and self.asset_ids:
            raise ValueError("Provide asset_ids or select_all, not both")
        if not self.select_all and not self.asset_ids:
            raise ValueError("Provide at least one asset id or select_all")
        return self


LabelItemStatus = Literal["generated", "not_found", "failed", "cancelled"]


class LabelItemResult(BaseModel):
    asset_id: str
    status: LabelItemStatus
    label: Optional[dict[str, Any]] = None
    error: Optional[dict[str, Any]] = None


class LabelBatchResult(BaseModel):
    requested: int
    generated: int
    failed: int
    cancelled: int
    items: list[LabelItemResult]
