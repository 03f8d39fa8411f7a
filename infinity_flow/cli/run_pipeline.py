#!/usr/bin/env python3
"""
Infinity Flow Pipeline Runner
=============================

End-to-end imputation run with a single command.

Usage:
    infinity-flow --config run.yaml
    infinity-flow --config run.yaml --intermediary /data/if_state
    infinity-flow --config run.yaml --stages subsample transform fit
    infinity-flow --config run.yaml --stages export --force
"""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import List, Optional


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Infinity Flow imputation pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run complete pipeline
  infinity-flow --config run.yaml

  # Resume an interrupted run
  infinity-flow --config run.yaml --intermediary /data/if_state

  # Recompute exports only
  infinity-flow --config run.yaml --intermediary /data/if_state --stages export --force
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=Path,
        required=True,
        help="Path to YAML configuration file"
    )
    parser.add_argument(
        "--intermediary", "-i",
        type=Path,
        default=None,
        help="Override the intermediary root (reuse it to resume)"
    )
    parser.add_argument(
        "--stages", "-s",
        type=str,
        nargs="+",
        default=None,
        help="Run only these stages (default: all)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Recompute stages even when their artifacts exist"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Enable progress logging"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        default=False,
        help="Only report errors"
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the pipeline CLI."""
    args = parse_args(argv)

    if not args.config.exists():
        print(f"Error: Configuration file not found: {args.config}", file=sys.stderr)
        return 1

    # Import here to avoid slow startup for --help
    from infinity_flow.config import load_full_config
    from infinity_flow.pipeline import PipelineOrchestrator

    try:
        config = load_full_config(args.config)
        if args.intermediary is not None:
            config = dataclasses.replace(
                config, paths=dataclasses.replace(config.paths, intermediary=args.intermediary)
            )
        if args.verbose or args.quiet:
            config = dataclasses.replace(
                config, pipeline=dataclasses.replace(config.pipeline, verbose=args.verbose and not args.quiet)
            )

        orchestrator = PipelineOrchestrator(config, stages=args.stages, force=args.force)
        result = orchestrator.run()

        print(f"Intermediary results: {result.paths.intermediary}")
        print(f"Output: {result.paths.output}")
        return 0

    except KeyboardInterrupt:
        print("\nPipeline interrupted by user")
        print("Re-run with --intermediary <same directory> to resume")
        return 130

    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
