"""Runtime helpers for driving the Schelling segregation simulation."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from fractions import Fraction
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from dataclasses_json import dataclass_json

from .logic import Agent
from .logic import ConfigurationError
from .logic import GridLocation
from .logic import InvalidStateError
from .logic import SegregationGrid
from .logic import _default_logger
from .logic import validate_dimensions
from .logic import validate_threshold


DEFAULT_WIDTH = 50
DEFAULT_HEIGHT = 50
DEFAULT_GROUPS = 2
DEFAULT_EMPTY_FRACTION = 0.2
DEFAULT_THRESHOLD = 0.5
DEFAULT_ROUNDS = 20


@dataclass_json
@dataclass(frozen=True)
class SimulationGrid:
    """Dataclass describing the grid used for rendering the map."""

    width: int
    height: int


@dataclass_json
@dataclass(frozen=True)
class CellSnapshot:
    """Serializable view of a single cell and its occupant."""

    location: GridLocation
    group: Optional[int] = None
    agent: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.group is None


@dataclass_json
@dataclass(frozen=True)
class SimulationSnapshot:
    """Serializable view of the current simulation state."""

    grid: SimulationGrid
    round_number: int
    cells: List[CellSnapshot]

    def layout(self) -> List[List[Optional[int]]]:
        """Return ``rows[y][x]`` of group ids with ``None`` for empty cells."""

        rows: List[List[Optional[int]]] = [
            [None] * self.grid.width for _ in range(self.grid.height)
        ]
        for cell in self.cells:
            rows[cell.location.y][cell.location.x] = cell.group
        return rows

    def group_counts(self) -> Dict[int, int]:
        """Return the number of agents in each group."""

        totals: Dict[int, int] = {}
        for cell in self.cells:
            if cell.group is not None:
                totals[cell.group] = totals.get(cell.group, 0) + 1
        return dict(sorted(totals.items()))

    def render(self) -> str:
        """Return the grid as text, one line per row, ``.`` for empty cells."""

        return "\n".join(
            "".join("." if group is None else str(group) for group in row)
            for row in self.layout()
        )


@dataclass_json
@dataclass(frozen=True)
class StepResult:
    """Outcome of a single relocation round."""

    round_number: int
    moved: int
    satisfied_fraction: float
    segregation_index: float


@dataclass_json
@dataclass(frozen=True)
class RunResult:
    """Per-round results of a run together with the final grid state."""

    steps: List[StepResult]
    snapshot: SimulationSnapshot

    @property
    def total_moved(self) -> int:
        return sum(step.moved for step in self.steps)

    @property
    def converged(self) -> bool:
        """True when the final round relocated nobody."""

        return bool(self.steps) and self.steps[-1].moved == 0


@dataclass_json
@dataclass(frozen=True)
class SimulationConfig:
    """Parameters for a complete simulation run."""

    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    groups: int = DEFAULT_GROUPS
    empty_fraction: float = DEFAULT_EMPTY_FRACTION
    threshold: float = DEFAULT_THRESHOLD
    rounds: int = DEFAULT_ROUNDS
    seed: Optional[int] = None
    exact_counts: bool = False
    stop_when_stable: bool = False

    @property
    def dimensions(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def validate(self) -> None:
        """Raise ``ConfigurationError`` when any field is out of range."""

        validate_dimensions(self.width, self.height)
        _validate_groups(self.groups)
        _validate_empty_fraction(self.empty_fraction)
        validate_threshold(self.threshold)
        _validate_rounds(self.rounds)
        if self.seed is not None and (
            isinstance(self.seed, bool) or not isinstance(self.seed, int)
        ):
            raise ConfigurationError("seed must be an integer when provided")


def _validate_groups(groups: object) -> None:
    if isinstance(groups, bool) or not isinstance(groups, int) or groups < 1:
        raise ConfigurationError("k must be an integer of at least 1")


def _validate_empty_fraction(p_empty: object) -> None:
    if isinstance(p_empty, bool) or not isinstance(p_empty, (int, float)):
        raise ConfigurationError("p_empty must be numeric")
    if not 0 <= p_empty < 1:
        raise ConfigurationError("p_empty must be within the range [0, 1)")


def _validate_rounds(num_rounds: object) -> None:
    if isinstance(num_rounds, bool) or not isinstance(num_rounds, int) or num_rounds < 0:
        raise ConfigurationError("num_rounds must be a non-negative integer")


def _coerce_dimensions(dimensions: Sequence[int]) -> Tuple[int, int]:
    try:
        width, height = dimensions
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("dimensions must be a (width, height) pair") from exc
    validate_dimensions(width, height)
    return width, height


class SegregationSimulation:
    """Owns one grid and its random source and evolves it round by round.

    A simulation starts uninitialized. ``initialize`` (or ``load_layout``)
    populates the grid, after which ``step`` and ``run`` mutate it in place.
    Each round evaluates satisfaction for every agent first and only then
    relocates the unsatisfied ones as a single batch, so the order in which
    agents are visited never influences who moves.
    """

    update_interval_seconds: float = 0.5

    def __init__(
        self,
        *,
        random_seed: Optional[int] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._rng = random.Random(random_seed)
        self._log = log_callback or _default_logger
        self._grid: Optional[SegregationGrid] = None
        self._groups = 0
        self._round = 0

    @classmethod
    def from_config(
        cls,
        config: SimulationConfig,
        *,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> "SegregationSimulation":
        """Build a simulation and populate it from ``config``."""

        config.validate()
        simulation = cls(random_seed=config.seed, log_callback=log_callback)
        simulation.initialize(
            config.dimensions,
            config.groups,
            config.empty_fraction,
            exact_counts=config.exact_counts,
        )
        return simulation

    @property
    def is_initialized(self) -> bool:
        return self._grid is not None

    @property
    def grid(self) -> SegregationGrid:
        """Expose the underlying grid for inspection."""

        return self._require_grid()

    @property
    def groups(self) -> int:
        return self._groups

    @property
    def round_number(self) -> int:
        return self._round

    def initialize(
        self,
        dimensions: Sequence[int],
        k: int,
        p_empty: float,
        *,
        exact_counts: bool = False,
    ) -> SimulationSnapshot:
        """Populate a fresh grid and return its snapshot.

        By default every cell is drawn independently: empty with probability
        ``p_empty`` and otherwise one of the ``k`` groups with equal
        probability, so group sizes only match their expectation. With
        ``exact_counts`` exactly ``floor(width * height * (1 - p_empty))``
        cells are occupied and the groups are dealt out as evenly as possible
        before the cells are shuffled.
        """

        width, height = _coerce_dimensions(dimensions)
        _validate_groups(k)
        _validate_empty_fraction(p_empty)

        if exact_counts:
            cells = self._partitioned_cells(width * height, k, p_empty)
        else:
            cells = self._independent_cells(width * height, k, p_empty)

        rows = [cells[y * width:(y + 1) * width] for y in range(height)]
        self._grid = SegregationGrid.from_layout(rows)
        self._groups = k
        self._round = 0

        counts = self._grid.group_counts()
        self._log(
            f"Initialized segregation grid {width}x{height}: "
            f"{sum(counts.values())} agents in {k} group(s), "
            f"{width * height - sum(counts.values())} empty cells"
        )
        return self.snapshot()

    def load_layout(self, rows: Sequence[Sequence[Optional[int]]]) -> SimulationSnapshot:
        """Replace the grid with a caller-supplied layout of group ids."""

        grid = SegregationGrid.from_layout(rows)
        self._grid = grid
        self._groups = max(grid.group_counts(), default=1)
        self._round = 0
        self._log(
            f"Loaded segregation grid {grid.width}x{grid.height} "
            f"with {len(grid.occupied())} agents"
        )
        return self.snapshot()

    def step(self, threshold: float) -> StepResult:
        """Run one round: evaluate satisfaction, then relocate the unsatisfied."""

        grid = self._require_grid()
        threshold = validate_threshold(threshold)

        counts = grid.neighbour_counts()
        unsatisfied = grid.unsatisfied_locations(threshold, counts)
        satisfied_fraction = grid.satisfied_fraction(threshold, counts)

        if unsatisfied:
            self._relocate(grid, unsatisfied)

        self._round += 1
        result = StepResult(
            round_number=self._round,
            moved=len(unsatisfied),
            satisfied_fraction=satisfied_fraction,
            segregation_index=grid.segregation_index(),
        )
        self._log(
            f"Round {self._round}: moved {result.moved} agent(s), "
            f"{satisfied_fraction:.3f} satisfied beforehand"
        )
        return result

    def run(
        self,
        num_rounds: int,
        threshold: float,
        *,
        stop_when_stable: bool = False,
    ) -> RunResult:
        """Call ``step`` ``num_rounds`` times and return every round's result.

        The simulation never stops on its own; ``stop_when_stable`` ends the
        run after the first round in which nobody moved.
        """

        self._require_grid()
        _validate_rounds(num_rounds)
        threshold = validate_threshold(threshold)

        steps: List[StepResult] = []
        for _ in range(num_rounds):
            result = self.step(threshold)
            steps.append(result)
            if stop_when_stable and result.moved == 0:
                self._log(f"Grid stable after round {result.round_number}")
                break

        self._log(
            f"Run finished after {len(steps)} round(s); "
            f"{sum(step.moved for step in steps)} relocation(s) in total"
        )
        return RunResult(steps=steps, snapshot=self.snapshot())

    def snapshot(self) -> SimulationSnapshot:
        """Return a serializable snapshot of the current grid state."""

        grid = self._require_grid()
        cells = []
        for location in grid.locations():
            agent = grid.occupant(location)
            cells.append(
                CellSnapshot(
                    location=location,
                    group=agent.group if agent is not None else None,
                    agent=agent.identifier if agent is not None else None,
                )
            )
        return SimulationSnapshot(
            grid=SimulationGrid(width=grid.width, height=grid.height),
            round_number=self._round,
            cells=cells,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require_grid(self) -> SegregationGrid:
        if self._grid is None:
            raise InvalidStateError("Simulation grid has not been initialized")
        return self._grid

    def _independent_cells(self, size: int, k: int, p_empty: float) -> List[Optional[int]]:
        population: List[Optional[int]] = [None]
        population.extend(range(1, k + 1))
        weights = [float(p_empty)] + [(1.0 - p_empty) / k] * k
        return [self._rng.choices(population, weights=weights)[0] for _ in range(size)]

    def _partitioned_cells(self, size: int, k: int, p_empty: float) -> List[Optional[int]]:
        # Exact arithmetic: 10 * (1 - 0.9) falls just below 1 in binary floats.
        occupied = math.floor(size * (1 - Fraction(str(p_empty))))
        cells: List[Optional[int]] = [1 + index % k for index in range(occupied)]
        cells.extend([None] * (size - occupied))
        self._rng.shuffle(cells)
        return cells

    def _relocate(self, grid: SegregationGrid, sources: Sequence[GridLocation]) -> None:
        destinations = grid.empty_locations()
        movers: List[Agent] = [grid.vacate(location) for location in sources]
        destinations.extend(sources)
        destinations.sort(key=lambda location: (location.y, location.x))
        self._rng.shuffle(destinations)
        for agent, destination in zip(movers, destinations):
            grid.place(destination, agent)


__all__ = [
    "CellSnapshot",
    "RunResult",
    "SegregationSimulation",
    "SimulationConfig",
    "SimulationGrid",
    "SimulationSnapshot",
    "StepResult",
]
