"""HSM record models."""

from typing import List, Optional
from pydantic import BaseModel, Field


class Members(BaseModel):
    ids: List[str] = Field(default_factory=list)


class Group(BaseModel):
    """Named group of nodes."""
    label: str
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    members: Members = Field(default_factory=Members)

    class Config:
        """Pydantic config."""
        extra = "ignore"

    def member_ids(self) -> List[str]:
        """Node ids in this group."""
        return list(self.members.ids)
