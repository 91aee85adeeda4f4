"""Core schemas for the application."""

from pydantic import BaseModel, ConfigDict


class ORMModel(BaseModel):
    """Base for read schemas built from SQLAlchemy rows."""

    model_config = ConfigDict(from_attributes=True)
