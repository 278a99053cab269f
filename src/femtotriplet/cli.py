"""Command-line interface for running the triplet analysis on event inputs."""

from __future__ import annotations

import argparse
import dataclasses
import importlib.util
import logging
from pathlib import Path
from typing import Any

from .histograms import HistogramRegistry
from .io import (
    load_collisions_table,
    load_config_json,
    load_events_json,
    load_particles_table,
    write_histograms_table,
)
from .models import TripletTaskConfig
from .triplets import TripletTask

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="femto-triplet",
        description="Build same-event and mixed-event Q3 correlation functions of particle triplets.",
    )
    parser.add_argument("--config", default=None, help="Run configuration JSON (defaults are used if omitted).")
    parser.add_argument(
        "--events",
        default=None,
        help="Input JSON with keys 'collisions' and 'particles'.",
    )
    parser.add_argument("--collisions", default=None, help="Collision table (.parquet, .csv, .pkl).")
    parser.add_argument("--particles", default=None, help="Particle table (.parquet, .csv, .pkl).")
    parser.add_argument("--pdg-code", type=int, default=None, help="Override the analysed particle PDG code.")
    parser.add_argument("--is-mc", action="store_true", help="Enable Monte Carlo truth histograms.")
    parser.add_argument("--no-cpr", action="store_true", help="Disable close-pair rejection.")
    parser.add_argument("--n-events-mix", type=int, default=None, help="Override the mixing depth.")
    parser.add_argument(
        "--out",
        required=True,
        help="Output table file for histogram bins (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    parser.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(registry, context) function.",
    )
    return parser


def apply_overrides(config: TripletTaskConfig, args: argparse.Namespace) -> TripletTaskConfig:
    """Return a copy of `config` with command-line overrides applied."""
    changes: dict[str, Any] = {}
    if args.pdg_code is not None:
        changes["pdg_code"] = args.pdg_code
    if args.is_mc:
        changes["is_mc"] = True
    if args.no_cpr:
        changes["close_pair"] = dataclasses.replace(config.close_pair, enabled=False)
    if args.n_events_mix is not None:
        changes["mixing"] = dataclasses.replace(config.mixing, n_events_mix=args.n_events_mix)
    if not changes:
        return config
    updated = dataclasses.replace(config, **changes)
    updated.validate()
    return updated


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load inputs, run the triplet task, write table, optional custom hook."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.events is None and (args.collisions is None or args.particles is None):
        parser.error("Provide --events, or both --collisions and --particles.")

    config = load_config_json(args.config) if args.config else TripletTaskConfig()
    config = apply_overrides(config, args)

    if args.events is not None:
        collisions, particles = load_events_json(args.events)
    else:
        collisions = load_collisions_table(args.collisions)
        particles = load_particles_table(args.particles)
    logger.info("Loaded %d collisions and %d particles", len(collisions), len(particles))

    task = TripletTask(config=config)
    registry = task.run(collisions, particles)
    write_histograms_table(args.out, registry)
    logger.info("Wrote histograms to %s", args.out)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            registry=registry,
            context={
                "config": config,
                "events_path": args.events,
                "collisions_path": args.collisions,
                "particles_path": args.particles,
                "output_path": args.out,
                "n_same_event_triplets": task.n_same_event_triplets,
                "n_mixed_event_triplets": task.n_mixed_event_triplets,
            },
        )
    return 0


def run_custom_script(script_path: str, registry: HistogramRegistry, context: dict[str, Any]) -> None:
    """Execute user-supplied post-processing callback `process(registry, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(registry, context)."
        )
    process(registry, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())
