"""Database models using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Text
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    DateTime column holding timezone-aware UTC values.

    Naive values are taken to be UTC. SQLite drops the offset on storage,
    so results are always returned with tzinfo=UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Article(SQLModel, table=True):
    """News article rewritten by the LLM from an RSS item or a fallback topic."""

    __tablename__ = "articles"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Original RSS data
    original_title: str = Field(max_length=500)
    original_description: Optional[str] = Field(default=None, sa_column=Column(Text))
    original_link: Optional[str] = Field(default=None, max_length=1000, index=True)
    source: str = Field(max_length=100, index=True)

    # Generated content
    title: str = Field(max_length=500, index=True)
    description: str = Field(sa_column=Column(Text, nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    tags: list = Field(default_factory=list, sa_column=Column(JSON))

    image: Optional[str] = Field(default=None, max_length=1000)
    category: str = Field(default="general", max_length=50, index=True)
    status: str = Field(default="published", max_length=20, index=True, description="draft | published | archived")
    pub_date: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime()))

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False, index=True))


class PreviewArticle(SQLModel, table=True):
    """Pre-match odds preview for one fixture (one article per fixture)."""

    __tablename__ = "preview_articles"

    id: Optional[int] = Field(default=None, primary_key=True)
    fixture_id: int = Field(unique=True, index=True, description="API-Football fixture ID")

    league_id: int = Field(index=True)
    league_name: str = Field(max_length=200)
    home_team: str = Field(max_length=200)
    away_team: str = Field(max_length=200)
    match_date: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False, index=True))
    venue: Optional[str] = Field(default=None, max_length=200)

    # Odds snapshot at generation time
    odds: dict = Field(default_factory=dict, sa_column=Column(JSON))
    home_form: Optional[str] = Field(default=None, max_length=50)
    away_form: Optional[str] = Field(default=None, max_length=50)

    title: str = Field(max_length=500, index=True)
    slug: str = Field(max_length=300, unique=True, index=True)
    description: str = Field(sa_column=Column(Text, nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    tags: list = Field(default_factory=list, sa_column=Column(JSON))
    status: str = Field(default="published", max_length=20, index=True)

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False, index=True))
