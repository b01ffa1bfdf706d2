"""Schemas for uploaded images and their variants."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class ImageVariantItem(BaseModel):
    variant: str
    url: str
    width: int
    height: int
    size: int


class ImageItem(BaseModel):
    id: str
    filename: str
    mime_type: str
    size: int
    width: int
    height: int
    order: int
    url: str
    thumbnail_url: str
    medium_url: str
    variants: List[ImageVariantItem] = Field(default_factory=list)


class UploadResponse(BaseModel):
    id: str
    url: str
    thumbnail: str
    medium: str
    filename: str
    size: int
    width: int
    height: int
    business_idea_id: Optional[str] = None


class ImageDeleteResponse(BaseModel):
    id: str
    deleted_files: int
    failed_files: int
