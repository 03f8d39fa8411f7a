"""
Error Taxonomy
==============

Exceptions raised by the Infinity Flow pipeline.

- ConfigurationError: inconsistent or invalid parameters, raised before any
  event data is processed.
- StageError: a pipeline stage could not produce its artifact.

Path creation and access failures surface as the builtin ``OSError``.
"""

from __future__ import annotations

from typing import Optional


class InfinityFlowError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(InfinityFlowError, ValueError):
    """Raised when parameters are missing, malformed or inconsistent."""


class StageError(InfinityFlowError, RuntimeError):
    """Raised when a pipeline stage fails.

    Attributes:
        stage: Name of the failing stage
        cause: Underlying exception, if any
    """

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        super().__init__(f"[{stage}] {message}")
