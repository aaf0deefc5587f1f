"""Schemas shared by list endpoints"""
from pydantic import BaseModel


class PaginationMeta(BaseModel):
    """Page position of a list response"""
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @classmethod
    def build(cls, page: int, page_size: int, total_items: int) -> "PaginationMeta":
        total_pages = (total_items + page_size - 1) // page_size if total_items > 0 else 0
        return cls(
            page=page, page_size=page_size, total_items=total_items, total_pages=total_pages
        )
