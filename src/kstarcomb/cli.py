"""Command-line interface for building K*± spectra from event inputs."""

from __future__ import annotations

import argparse
import dataclasses
import importlib.util
import logging
import sys
from pathlib import Path
from typing import Any

from .combiner import ResonanceCombiner
from .histograms import HistogramAccumulator
from .io import (
    load_config_json,
    load_events_json,
    load_events_tables,
    write_histograms_table,
    write_pairs_table,
)
from .models import AnalysisConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="kstar-combiner",
        description="Build same-event and mixed-event pion x K0S invariant-mass spectra.",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--events", help="Input JSON with key 'events'.")
    source.add_argument(
        "--tables",
        nargs=3,
        metavar=("COLLISIONS", "TRACKS", "V0S"),
        help="Columnar inputs (.parquet, .csv, .pkl) joined on collision_id.",
    )
    parser.add_argument("--config", default=None, help="Sectioned JSON analysis configuration.")
    parser.add_argument(
        "--mode",
        choices=["same", "mixed", "both"],
        default="both",
        help="Which spectra to build.",
    )
    parser.add_argument(
        "--n-mixed-events",
        type=int,
        default=None,
        help="Override the number of pooled partner events per mixing bin.",
    )
    parser.add_argument(
        "--max-vertex-z",
        type=float,
        default=None,
        help="Override the accepted |z| range of the primary vertex (cm).",
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output table of histogram bins (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--pairs-out",
        default=None,
        help="Optional output table with every accepted candidate.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, ...).")
    parser.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(histograms, context) function.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load inputs, run combiners, write tables, optional custom hook."""
    args = build_parser().parse_args(argv)
    _setup_logging(args.log_level)

    config = load_config_json(args.config) if args.config else AnalysisConfig()
    config = apply_overrides(config, args)
    if args.events:
        events = load_events_json(args.events)
    else:
        events = load_events_tables(*args.tables)

    histograms = HistogramAccumulator(config)
    combiner = ResonanceCombiner(config=config, histograms=histograms)
    pairs = []
    if args.mode in ("same", "both"):
        pairs.extend(combiner.combine_events(events))
    if args.mode in ("mixed", "both"):
        pairs.extend(combiner.combine_mixed(events))
    logger.info(
        "Filled %.0f same-event and %.0f mixed-event entries",
        histograms.entries("same_event"),
        histograms.entries("mixed_event"),
    )

    write_histograms_table(args.out, histograms)
    if args.pairs_out:
        write_pairs_table(args.pairs_out, pairs)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            histograms=histograms,
            context={
                "events_path": args.events,
                "tables_paths": args.tables,
                "config": config,
                "mode": args.mode,
                "pairs": pairs,
                "output_path": args.out,
            },
        )
    return 0


def apply_overrides(config: AnalysisConfig, args: argparse.Namespace) -> AnalysisConfig:
    """Return a copy of `config` with command-line overrides applied."""
    if args.n_mixed_events is not None:
        config = dataclasses.replace(
            config, mixing=dataclasses.replace(config.mixing, n_mixed_events=args.n_mixed_events)
        )
    if args.max_vertex_z is not None:
        config = dataclasses.replace(
            config, event=dataclasses.replace(config.event, max_abs_vertex_z=args.max_vertex_z)
        )
    return config


def run_custom_script(
    script_path: str, histograms: HistogramAccumulator, context: dict[str, Any]
) -> None:
    """Execute user-supplied post-processing callback `process(histograms, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(histograms, context)."
        )
    process(histograms, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


if __name__ == "__main__":
    raise SystemExit(main())
