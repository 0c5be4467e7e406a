"""Content production records exchanged with the collaborator services."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ContentChunk(BaseModel):
    number: int
    title: str
    estimated_read_time: int                # minutes


class VideoPlan(BaseModel):
    day: int
    title: str
    video_type: str                         # "intro" | "daily-study" | "practice" | "review"
    estimated_duration: int                 # minutes


class ContentPackage(BaseModel):
    """One week of generated study content."""

    week: int
    theme: str
    chunks: List[ContentChunk] = []
    videos: List[VideoPlan] = []
    generated_at: datetime


class QAReport(BaseModel):
    week: int
    overall_score: float = Field(ge=0, le=100)
    issues: List[str] = []
    checked_at: datetime


class Release(BaseModel):
    week: int
    tag: str
    name: str
    asset_count: int = 0
    created_at: datetime
    url: Optional[str] = None
