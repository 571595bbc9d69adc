"""Backlog item data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from backlog_triage.errors import TriageInputError


@dataclass(frozen=True)
class BacklogItem:
    """A single issue to triage, as returned by the tracker. Never mutated."""
    number: int
    title: str
    url: str = ""
    author: str = ""
    created_at: str = ""
    labels: tuple[str, ...] = field(default_factory=tuple)
    body: str = ""
    comments: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_tracker(cls, data: dict[str, Any]) -> BacklogItem:
        """Build an item from one ``gh issue list --json`` record."""
        author = data.get("author") or {}
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            url=data.get("url") or "",
            author=author.get("login", "") if isinstance(author, dict) else str(author),
            created_at=data.get("createdAt") or "",
            labels=tuple(label["name"] for label in data.get("labels") or []),
            body=data.get("body") or "",
            comments=tuple(c.get("body") or "" for c in data.get("comments") or []),
        )

    def validate(self) -> None:
        """Raise TriageInputError if the item cannot be triaged."""
        if self.number <= 0:
            raise TriageInputError(f"Invalid issue number: {self.number}")
        if not self.title.strip():
            raise TriageInputError(f"Issue #{self.number} has no title")
