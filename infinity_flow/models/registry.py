"""
Algorithm Registry
==================

Normalizes the named regression backends of a run and validates them
before any data processing begins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from infinity_flow.errors import ConfigurationError
from infinity_flow.utils.naming import make_unique, unique_safe_names

from .backends import RegressionBackend, get_backend

logger = logging.getLogger(__name__)

AlgorithmsInput = Union[Mapping[Optional[str], Any], Sequence[Tuple[Optional[str], Any]], Sequence[Any]]


@dataclass(frozen=True)
class AlgorithmEntry:
    name: str
    backend: RegressionBackend
    params: Dict[str, Any] = field(default_factory=dict)
    # artifact directory, distinct across the registry
    dirname: str = ""


def _as_pairs(algorithms: AlgorithmsInput) -> List[Tuple[Optional[str], Any]]:
    if isinstance(algorithms, Mapping):
        return list(algorithms.items())
    pairs = []
    for item in algorithms:
        if isinstance(item, tuple) and len(item) == 2:
            pairs.append(item)
        else:
            pairs.append((None, item))
    return pairs


class AlgorithmRegistry:
    """
    Ordered collection of regression algorithms with aligned hyperparameters.

    Args:
        algorithms: name -> backend mapping, or a sequence of (name, backend)
            pairs or bare backends. Backends may be names, classes or instances.
        params: Per-algorithm hyperparameters, positionally aligned with
            *algorithms*

    Raises:
        ConfigurationError: If the lengths differ or a backend is unusable
    """

    def __init__(self, algorithms: AlgorithmsInput, params: Sequence[Optional[Mapping[str, Any]]]):
        pairs = _as_pairs(algorithms)
        params = list(params)
        if len(params) != len(pairs):
            raise ConfigurationError(
                f"Hyperparameter sets and regression algorithms should be lists of the same length "
                f"(got {len(params)} and {len(pairs)})"
            )

        backends = [get_backend(backend) for _, backend in pairs]
        for backend in backends:
            backend.probe()

        names = [
            str(name) if name is not None and str(name).strip() else f"Alg{i}"
            for i, (name, _) in enumerate(pairs, start=1)
        ]
        names = make_unique(names)

        self._entries: Tuple[AlgorithmEntry, ...] = tuple(
            AlgorithmEntry(name=n, backend=b, params=dict(p or {}), dirname=d)
            for n, b, p, d in zip(names, backends, params, unique_safe_names(names))
        )
        logger.debug(f"Registered algorithms: {self.names}")

    @classmethod
    def from_specs(cls, specs: Sequence[Any]) -> "AlgorithmRegistry":
        """Build from config AlgorithmSpec entries (name, backend, params)."""
        return cls([(s.name, s.backend) for s in specs], [s.params for s in specs])

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AlgorithmEntry]:
        return iter(self._entries)

    def __getitem__(self, name: str) -> AlgorithmEntry:
        for entry in self._entries:
            if entry.name == name:
                return entry
        raise KeyError(name)

    @property
    def names(self) -> List[str]:
        return [e.name for e in self._entries]

    def index(self, name: str) -> int:
        return self.names.index(name)
