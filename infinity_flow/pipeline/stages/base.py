"""
Pipeline Stage Base Class
=========================

Abstract base class for all pipeline stages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from infinity_flow.data.artifacts import is_up_to_date
from infinity_flow.errors import StageError

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext


@dataclass
class StageResult:
    """Result of a pipeline stage execution."""
    success: bool
    message: str = ""
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, message: str = "", data: Optional[Dict] = None) -> "StageResult":
        """Create a successful result."""
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, data: Optional[Dict] = None) -> "StageResult":
        """Create a failed result."""
        return cls(success=False, message=message, data=data)


class PipelineStage(ABC):
    """
    Abstract base class for pipeline stages.

    Each stage implements:
    - name: Unique identifier for the stage
    - outputs(): Artifacts the stage owns
    - requires(): Upstream artifacts it reads
    - run(): Execute the stage
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this stage."""
        pass

    @abstractmethod
    def outputs(self, context: "PipelineContext") -> List[Path]:
        """Artifacts written by this stage."""
        pass

    def requires(self, context: "PipelineContext") -> List[Path]:
        """Upstream artifacts that must exist before the stage can run."""
        return []

    @abstractmethod
    def run(self, context: "PipelineContext") -> StageResult:
        """
        Execute the stage.

        Args:
            context: Pipeline execution context

        Returns:
            StageResult indicating success or failure
        """
        pass

    def is_completed(self, context: "PipelineContext") -> bool:
        """
        True when every artifact of this stage exists and is at least as recent
        as every upstream artifact it was derived from.
        """
        return is_up_to_date(self.outputs(context), self.requires(context))

    def needs_update(self, context: "PipelineContext", outputs, inputs) -> bool:
        """Whether one task of the stage has to (re)produce *outputs* from *inputs*."""
        if context.extras.get("force"):
            return True
        return not is_up_to_date(outputs, inputs)

    def check_inputs(self, context: "PipelineContext") -> None:
        """
        Raise if an upstream artifact is missing.

        Missing inputs are never re-derived implicitly; the upstream stage has
        to be run again explicitly.
        """
        missing = [p for p in self.requires(context) if not Path(p).exists()]
        if missing:
            shown = ", ".join(str(p) for p in missing[:5])
            more = f" (+{len(missing) - 5} more)" if len(missing) > 5 else ""
            raise StageError(self.name, f"Missing upstream artifacts: {shown}{more}")

    def log(self, context: "PipelineContext", message: str, level: str = "info") -> None:
        """Log a message through the context logger."""
        context.log(f"[{self.name}] {message}", level)
