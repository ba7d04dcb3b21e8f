"""Command line utility for running a segregation simulation and printing the outcome."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional, Sequence

from .logic import ConfigurationError
from .runtime import DEFAULT_EMPTY_FRACTION
from .runtime import DEFAULT_GROUPS
from .runtime import DEFAULT_HEIGHT
from .runtime import DEFAULT_ROUNDS
from .runtime import DEFAULT_THRESHOLD
from .runtime import DEFAULT_WIDTH
from .runtime import RunResult
from .runtime import SegregationSimulation
from .runtime import SimulationConfig

LOGGER_NAME = "schelling.cli"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_LEVELS = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments for the simulation runner."""
    parser = argparse.ArgumentParser(
        description="Run a Schelling segregation simulation on a bounded grid."
    )
    parser.add_argument("--width", type=int, default=DEFAULT_WIDTH, help="Grid width in cells.")
    parser.add_argument("--height", type=int, default=DEFAULT_HEIGHT, help="Grid height in cells.")
    parser.add_argument(
        "--groups",
        type=int,
        default=DEFAULT_GROUPS,
        help="Number of group identities agents are drawn from.",
    )
    parser.add_argument(
        "--empty-fraction",
        dest="empty_fraction",
        type=float,
        default=DEFAULT_EMPTY_FRACTION,
        help="Probability that a cell starts empty, within [0, 1).",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help="Minimum share of same-group neighbours an agent needs to stay put.",
    )
    parser.add_argument("--rounds", type=int, default=DEFAULT_ROUNDS, help="Number of rounds to run.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the random source.")
    parser.add_argument(
        "--exact-counts",
        dest="exact_counts",
        action="store_true",
        help="Occupy an exact number of cells and split groups evenly.",
    )
    parser.add_argument(
        "--stop-when-stable",
        dest="stop_when_stable",
        action="store_true",
        help="Stop after the first round in which no agent moved.",
    )
    parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the run as JSON instead of a text summary.",
    )
    parser.add_argument(
        "--log-level",
        default=DEFAULT_LOG_LEVEL,
        choices=LOG_LEVELS,
        help="Logging verbosity for the utility output.",
    )
    return parser.parse_args(argv)


def configure_logging(log_level: str) -> logging.Logger:
    """Configure the root logger and return the module logger."""
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return logging.getLogger(LOGGER_NAME)


def config_from_arguments(arguments: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        width=arguments.width,
        height=arguments.height,
        groups=arguments.groups,
        empty_fraction=arguments.empty_fraction,
        threshold=arguments.threshold,
        rounds=arguments.rounds,
        seed=arguments.seed,
        exact_counts=arguments.exact_counts,
        stop_when_stable=arguments.stop_when_stable,
    )


def format_summary(result: RunResult) -> List[str]:
    """Return printable lines describing each round and the final grid."""
    lines = [
        f"round {step.round_number:>4}  moved {step.moved:>6}  "
        f"satisfied {step.satisfied_fraction:.3f}  "
        f"segregation {step.segregation_index:.3f}"
        for step in result.steps
    ]
    counts = ", ".join(
        f"group {group}: {count}" for group, count in result.snapshot.group_counts().items()
    )
    lines.append(f"population: {counts or 'none'}")
    lines.append(result.snapshot.render())
    return lines


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entrypoint for the ``schelling`` console script."""
    arguments = parse_arguments(argv)
    logger = configure_logging(arguments.log_level)
    config = config_from_arguments(arguments)

    try:
        simulation = SegregationSimulation.from_config(config, log_callback=logger.info)
        result = simulation.run(
            config.rounds,
            config.threshold,
            stop_when_stable=config.stop_when_stable,
        )
    except ConfigurationError as exc:
        logger.error("Invalid simulation parameters: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if arguments.as_json:
        print(
            json.dumps(
                {
                    "config": config.to_dict(),
                    "rounds": [step.to_dict() for step in result.steps],
                    "converged": result.converged,
                    "snapshot": result.snapshot.to_dict(),
                }
            )
        )
    else:
        for line in format_summary(result):
            print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
