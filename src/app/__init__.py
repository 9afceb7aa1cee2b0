"""Application bootstrap helpers for the Word Drill project."""

from .runtime import bootstrap, build_orchestrator, run_app
from .settings import AppSettings

__all__ = ["bootstrap", "build_orchestrator", "run_app", "AppSettings"]
