"""
Run Journal
===========

Persists per-stage status for audit of resumed and failed runs.
Whether a stage is re-run is decided from its artifacts, not from here.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    """Status of a pipeline stage."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class CheckpointManager:
    """
    Manages the run journal stored next to the intermediary artifacts.

    Saves state to a JSON file after each stage transition.
    """

    VERSION = "1.0"

    def __init__(self, state_path: Path):
        """
        Initialize checkpoint manager.

        Args:
            state_path: Path to journal JSON file
        """
        self.state_path = Path(state_path)
        self._state: Dict[str, Any] = self._default_state()

    def _default_state(self) -> Dict[str, Any]:
        """Create default empty state."""
        return {
            "version": self.VERSION,
            "started_at": None,
            "last_updated_at": None,
            "config_hash": None,
            "stages": {},
            "errors": [],
        }

    def load(self) -> bool:
        """
        Load journal from disk.

        Returns:
            True if a journal was loaded, False if starting fresh
        """
        if not self.state_path.exists():
            return False

        try:
            with open(self.state_path, "r") as f:
                self._state = json.load(f)
            return True
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load run journal {self.state_path}: {e}")
            return False

    def save(self) -> None:
        """Persist current state to disk."""
        self._state["last_updated_at"] = datetime.now().isoformat()
        self.state_path.parent.mkdir(parents=True, exist_ok=True)

        # Write atomically via temp file
        temp_path = self.state_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(self._state, f, indent=2, default=str)
        temp_path.replace(self.state_path)

    def initialize(self, config_hash: str, stages: Sequence[str]) -> None:
        """
        Initialize the journal for a new run.

        Args:
            config_hash: SHA256 hash of config for change detection
            stages: Ordered stage names
        """
        self._state["started_at"] = datetime.now().isoformat()
        self._state["config_hash"] = config_hash
        for stage in stages:
            self._state["stages"][stage] = {
                "status": TaskStatus.PENDING.value,
                "started_at": None,
                "completed_at": None,
            }
        self.save()

    @staticmethod
    def compute_config_hash(config_dict: Dict) -> str:
        """Compute SHA256 hash of config for change detection."""
        config_str = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    def get_config_hash(self) -> Optional[str]:
        """Get stored config hash."""
        return self._state.get("config_hash")

    def set_config_hash(self, config_hash: str) -> None:
        self._state["config_hash"] = config_hash
        self.save()

    # Stage management

    def _stage(self, stage: str) -> Dict[str, Any]:
        return self._state["stages"].setdefault(stage, {"status": TaskStatus.PENDING.value})

    def mark_stage_started(self, stage: str) -> None:
        """Mark a stage as in-progress."""
        self._stage(stage)["status"] = TaskStatus.IN_PROGRESS.value
        self._stage(stage)["started_at"] = datetime.now().isoformat()
        self.save()

    def mark_stage_completed(self, stage: str) -> None:
        """Mark a stage as completed."""
        self._stage(stage)["status"] = TaskStatus.COMPLETED.value
        self._stage(stage)["completed_at"] = datetime.now().isoformat()
        self.save()

    def mark_stage_skipped(self, stage: str) -> None:
        """Mark a stage as skipped because its artifacts already exist."""
        self._stage(stage)["status"] = TaskStatus.SKIPPED.value
        self._stage(stage)["skipped_at"] = datetime.now().isoformat()
        self.save()

    def mark_stage_failed(self, stage: str, error: str) -> None:
        """Mark a stage as failed."""
        self._stage(stage)["status"] = TaskStatus.FAILED.value
        self._stage(stage)["error"] = error
        self._state["errors"].append({
            "stage": stage,
            "error": error,
            "timestamp": datetime.now().isoformat(),
        })
        self.save()

    def get_stage_status(self, stage: str) -> TaskStatus:
        """Get current status of a stage."""
        stage_data = self._state["stages"].get(stage, {})
        return TaskStatus(stage_data.get("status", TaskStatus.PENDING.value))

    def get_errors(self) -> List[Dict]:
        """Get list of all errors."""
        return self._state.get("errors", [])
