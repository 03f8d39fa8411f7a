"""
Subsample Stage
===============

Selects at most N events per input file and splits them into disjoint
train/test halves.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence

import numpy as np

from infinity_flow.data.artifacts import write_frame
from infinity_flow.utils import seeding
from infinity_flow.utils.parallel import ParallelBackend

from .base import PipelineStage, StageResult

if TYPE_CHECKING:
    from infinity_flow.pipeline.context import PipelineContext


def select_events(n_events: int, cap: Optional[int], seed: int, file_index: int) -> np.ndarray:
    """Sorted positions of the (at most *cap*) events kept for one file."""
    if cap is None or cap >= n_events:
        return np.arange(n_events)
    rng = seeding.task_rng(seed, seeding.SUBSAMPLE, file_index)
    return np.sort(rng.choice(n_events, size=int(cap), replace=False))


def split_train_test(n_selected: int, seed: int, file_index: int) -> np.ndarray:
    """Boolean train mask; the first half of a seeded permutation trains."""
    rng = seeding.task_rng(seed, seeding.SPLIT, file_index)
    order = rng.permutation(n_selected)
    train = np.zeros(n_selected, dtype=bool)
    train[order[: n_selected // 2]] = True
    return train


def subsample_file(
    reader,
    source: Path,
    destination: Path,
    channels: Sequence[str],
    cap: Optional[int],
    seed: int,
    file_index: int,
) -> int:
    """Read one file, keep the selected events and write them with the split."""
    events = reader.read(source)
    missing = [c for c in channels if c not in events.columns]
    if missing:
        raise ValueError(f"{source.name} lacks channels {missing}")

    selected = select_events(len(events), cap, seed, file_index)
    subset = events.iloc[selected][list(channels)].reset_index(drop=True)
    train = split_train_test(len(subset), seed, file_index)
    write_frame(destination, subset, extra_arrays={"train": train, "event_index": selected})
    return len(subset)


class SubsampleStage(PipelineStage):
    """
    Subsample stage: downsample every input file.

    Tasks:
    - Read each input file through the event reader
    - Keep at most ``input_events_downsampling`` events (seeded per file)
    - Assign each kept event to the train or the test half
    """

    @property
    def name(self) -> str:
        return "subsample"

    def outputs(self, context: "PipelineContext") -> List[Path]:
        return [context.subset_path(row) for row in context.rows]

    def requires(self, context: "PipelineContext") -> List[Path]:
        return [context.paths.input / row.file for row in context.rows]

    def run(self, context: "PipelineContext") -> StageResult:
        self.check_inputs(context)
        cap = context.config.sampling.input_events_downsampling
        channels = context.backbone + [context.exploratory]

        pending = []
        args = []
        for i, row in enumerate(context.rows):
            source = context.paths.input / row.file
            destination = context.subset_path(row)
            if not self.needs_update(context, [destination], [source]):
                continue
            pending.append(row)
            args.append((context.reader, source, destination, channels, cap, context.seed, i))

        self.log(
            context,
            f"Subsampling {len(args)}/{len(context.rows)} files (cap={cap if cap is not None else 'none'})",
        )
        backend = ParallelBackend(context.config.compute.parallel_backend, n_jobs=context.cores)
        counts = backend.starmap(subsample_file, args)
        for row, n in zip(pending, counts):
            self.log(context, f"  {row.file}: {n} events kept", "debug")
        return StageResult.ok(
            f"Subsampled {len(counts)} files", data={"events": {row.file: n for row, n in zip(pending, counts)}}
        )
