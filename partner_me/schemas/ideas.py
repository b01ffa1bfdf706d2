"""Schemas for business ideas."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from partner_me.schemas.media import ImageItem


class BusinessIdeaWrite(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    budget_min: float = Field(ge=0)
    budget_max: float = Field(ge=0)
    images: List[str] = Field(default_factory=list)
    image_ids: List[str] = Field(default_factory=list, max_length=20)

    @model_validator(mode="after")
    def _check_invariants(self) -> "BusinessIdeaWrite":
        if self.budget_min > self.budget_max:
            raise ValueError("Minimum budget must be less than or equal to maximum budget")
        if len(set(self.image_ids)) != len(self.image_ids):
            raise ValueError("Image ids must be unique")
        return self


class ImageReorderRequest(BaseModel):
    image_ids: List[str] = Field(min_length=1)


class BusinessIdeaItem(BaseModel):
    id: str
    title: str
    description: str
    budget_min: float
    budget_max: float
    images: List[str]
    uploaded_images: List[ImageItem]
    created_at: datetime
    updated_at: datetime
