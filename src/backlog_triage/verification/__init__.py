"""Sandboxed compile verification of reproduction snippets."""

from .base import VerificationVerdict
from .imports import detect_imports
from .sandbox import SandboxBuilder, resolve_source

__all__ = ["SandboxBuilder", "VerificationVerdict", "detect_imports", "resolve_source"]
