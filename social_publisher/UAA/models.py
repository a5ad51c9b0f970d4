# social_publisher/UAA/models.py
from sqlmodel import SQLModel, Field, Column
from datetime import datetime
import uuid
from sqlalchemy import String

from social_publisher.models.types import UTCDateTime, utcnow


class User(SQLModel, table=True):
    """Local mirror of an identity owned by the external auth provider."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(sa_column=Column(String, unique=True, index=True, nullable=False))
    username: str = Field(sa_column=Column(String, unique=True, index=True, nullable=False))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
