"""Pydantic models for vault search."""

from typing import List

from pydantic import BaseModel, Field


class LineMatch(BaseModel):
    """A matching line with surrounding context."""
    line: int = Field(..., ge=1, description="1-based line number")
    content: str = Field(..., description="Matched line, stripped")
    context: str = Field("", description="Up to two lines either side")


class SearchResult(BaseModel):
    """A file with at least one match."""
    file_path: str = Field(..., description="Vault-relative path")
    file_name: str = Field(..., description="Base name including extension")
    title: str = Field(..., description="Derived note title")
    matches: List[LineMatch] = Field(default_factory=list)
