"""
Regression Backends
===================

Pluggable regression algorithms behind a uniform probe/fit/predict contract
and the registry that validates them before any data is processed.
"""

from .backends import BACKENDS, RegressionBackend, get_backend
from .registry import AlgorithmEntry, AlgorithmRegistry

__all__ = [
    "BACKENDS",
    "RegressionBackend",
    "get_backend",
    "AlgorithmEntry",
    "AlgorithmRegistry",
]
