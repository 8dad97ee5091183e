"""Category schemas."""
from pydantic import BaseModel


class Category(BaseModel):
    """Category owned by a scope; tasks reference it by id."""

    id: str
    label: str
    color: str
