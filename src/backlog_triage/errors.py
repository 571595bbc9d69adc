"""Exceptions raised across the triage pipeline."""

from __future__ import annotations


class TriageError(Exception):
    """Base class for triage pipeline errors."""


class TrackerError(TriageError):
    """The issue tracker could not be queried. Fatal to the whole run."""


class TriageInputError(TriageError):
    """A backlog item is missing data required to triage it."""
