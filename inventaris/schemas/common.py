"""Shared response schemas."""
from pydantic import BaseModel


class Pagination(BaseModel):
    """Pagination metadata returned with every list."""
    total_items: int
    total_pages: int
    current_page: int
    per_page: int
    has_next: bool
    has_previous: bool


class Message(BaseModel):
    message: str
