"""
Infinity Flow
=============

Imputation of exploratory antibody measurements across massively parallel
flow-cytometry screens. Each input file shares a backbone panel and carries one
exploratory channel; regression models trained per file on backbone features
transfer that exploratory measurement to every other file.

Usage:
    infinity-flow --config run.yaml

    from infinity_flow import infinity_flow
    result = infinity_flow(path_to_fcs="fcs/", path_to_output="out/")
"""

from infinity_flow.api import infinity_flow
from infinity_flow.errors import ConfigurationError, InfinityFlowError, StageError

__all__ = [
    "infinity_flow",
    "ConfigurationError",
    "InfinityFlowError",
    "StageError",
]

__version__ = "0.1.0"
