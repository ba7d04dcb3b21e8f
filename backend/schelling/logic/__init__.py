"""Core grid primitives for the Schelling segregation simulation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict
from typing import Iterator
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple

from dataclasses_json import dataclass_json


class SchellingError(Exception):
    """Base class for errors raised by the segregation simulation."""


class ConfigurationError(SchellingError, ValueError):
    """Raised when simulation parameters are malformed or out of range."""


class InvalidStateError(SchellingError, RuntimeError):
    """Raised when an operation requires an initialized grid."""


# Moore neighbourhood, excluding the centre cell.
MOORE_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (-1, -1),
    (0, -1),
    (1, -1),
    (-1, 0),
    (1, 0),
    (-1, 1),
    (0, 1),
    (1, 1),
)


def _default_logger(message: str) -> None:
    """No-op logger used when a caller does not provide a callback."""

    return None


@dataclass_json
@dataclass(frozen=True)
class GridLocation:
    """Simple integer based coordinate identifying a cell on the grid."""

    x: int
    y: int

    def __post_init__(self) -> None:
        if not isinstance(self.x, int) or not isinstance(self.y, int):
            raise TypeError("GridLocation coordinates must be integers")

    def translated(self, dx: int, dy: int) -> "GridLocation":
        """Return a new location offset by the provided deltas."""

        if not isinstance(dx, int) or not isinstance(dy, int):
            raise TypeError("GridLocation translation requires integer deltas")
        return GridLocation(self.x + dx, self.y + dy)


@dataclass_json
@dataclass(frozen=True)
class Agent:
    """An occupant of a single cell carrying an immutable group identity."""

    identifier: int
    group: int

    def __post_init__(self) -> None:
        if not isinstance(self.identifier, int) or self.identifier < 0:
            raise ValueError("Agent identifier must be a non-negative integer")
        if not isinstance(self.group, int) or self.group < 1:
            raise ValueError("Agent group must be a positive integer")


@dataclass(frozen=True)
class NeighbourCounts:
    """Same and different group tallies over an agent's occupied neighbours."""

    same: int
    other: int

    @property
    def total(self) -> int:
        return self.same + self.other

    def ratio(self) -> Optional[float]:
        """Return the same-group share, or ``None`` without occupied neighbours."""

        if self.total == 0:
            return None
        return self.same / self.total

    def is_satisfied(self, threshold: float) -> bool:
        """Agents without occupied neighbours are always satisfied."""

        ratio = self.ratio()
        if ratio is None:
            return True
        return ratio >= threshold


def validate_dimensions(width: object, height: object) -> None:
    """Ensure grid dimensions are positive integers."""

    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer")


def validate_threshold(threshold: object) -> float:
    """Return the threshold as a float after checking it lies within [0, 1]."""

    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ConfigurationError("threshold must be numeric")
    if not 0 <= threshold <= 1:
        raise ConfigurationError("threshold must be within the range [0, 1]")
    return float(threshold)


class SegregationGrid:
    """Bounded two dimensional lattice of cells, each empty or holding an agent.

    Cells are addressed as ``(x, y)`` with ``0 <= x < width`` and
    ``0 <= y < height``. Iteration order is always row-major (``y`` outer,
    ``x`` inner), which keeps every randomised operation reproducible for a
    given random source.
    """

    def __init__(self, width: int, height: int) -> None:
        validate_dimensions(width, height)
        self.width = width
        self.height = height
        self._cells: List[List[Optional[Agent]]] = [
            [None for _ in range(width)] for _ in range(height)
        ]

    @classmethod
    def from_layout(
        cls,
        rows: Sequence[Sequence[Optional[int]]],
    ) -> "SegregationGrid":
        """Build a grid from ``rows[y][x]`` entries of ``None`` or a group id."""

        if not rows or not rows[0]:
            raise ConfigurationError("layout must contain at least one cell")
        width = len(rows[0])
        if any(len(row) != width for row in rows):
            raise ConfigurationError("layout rows must all have the same length")

        grid = cls(width, len(rows))
        identifier = 0
        for y, row in enumerate(rows):
            for x, group in enumerate(row):
                if group is None:
                    continue
                if isinstance(group, bool) or not isinstance(group, int) or group < 1:
                    raise ConfigurationError(
                        f"layout cell ({x}, {y}) must be empty or a positive group id"
                    )
                grid.place(GridLocation(x, y), Agent(identifier=identifier, group=group))
                identifier += 1
        return grid

    def _within_bounds(self, location: GridLocation) -> bool:
        return 0 <= location.x < self.width and 0 <= location.y < self.height

    def _require_bounds(self, location: GridLocation) -> None:
        if not self._within_bounds(location):
            raise ValueError(f"location {location} is outside the grid bounds")

    def locations(self) -> Iterator[GridLocation]:
        """Yield every cell location in row-major order."""

        for y in range(self.height):
            for x in range(self.width):
                yield GridLocation(x, y)

    def occupant(self, location: GridLocation) -> Optional[Agent]:
        """Return the agent at ``location`` or ``None`` when the cell is empty."""

        self._require_bounds(location)
        return self._cells[location.y][location.x]

    def place(self, location: GridLocation, agent: Agent) -> None:
        """Put ``agent`` into an empty cell."""

        self._require_bounds(location)
        if self._cells[location.y][location.x] is not None:
            raise ValueError(f"location {location} is already occupied")
        self._cells[location.y][location.x] = agent

    def vacate(self, location: GridLocation) -> Agent:
        """Remove and return the agent occupying ``location``."""

        self._require_bounds(location)
        agent = self._cells[location.y][location.x]
        if agent is None:
            raise ValueError(f"location {location} is already empty")
        self._cells[location.y][location.x] = None
        return agent

    def occupied(self) -> List[Tuple[GridLocation, Agent]]:
        """Return ``(location, agent)`` pairs for every occupied cell."""

        pairs = []
        for location in self.locations():
            agent = self._cells[location.y][location.x]
            if agent is not None:
                pairs.append((location, agent))
        return pairs

    def empty_locations(self) -> List[GridLocation]:
        """Return every empty cell in row-major order."""

        return [
            location
            for location in self.locations()
            if self._cells[location.y][location.x] is None
        ]

    def neighbour_counts(self) -> Dict[GridLocation, NeighbourCounts]:
        """Tally same and different group neighbours for every occupied cell."""

        counts: Dict[GridLocation, NeighbourCounts] = {}
        for y, row in enumerate(self._cells):
            for x, agent in enumerate(row):
                if agent is None:
                    continue
                same = 0
                other = 0
                for dx, dy in MOORE_OFFSETS:
                    nx, ny = x + dx, y + dy
                    if not (0 <= nx < self.width and 0 <= ny < self.height):
                        continue
                    neighbour = self._cells[ny][nx]
                    if neighbour is None:
                        continue
                    if neighbour.group == agent.group:
                        same += 1
                    else:
                        other += 1
                counts[GridLocation(x, y)] = NeighbourCounts(same=same, other=other)
        return counts

    def unsatisfied_locations(
        self,
        threshold: float,
        counts: Optional[Dict[GridLocation, NeighbourCounts]] = None,
    ) -> List[GridLocation]:
        """Return the occupied cells whose same-group share is below ``threshold``.

        ``counts`` may carry a tally from ``neighbour_counts`` taken on the
        current grid so that one round only scans the cells once.
        """

        threshold = validate_threshold(threshold)
        if counts is None:
            counts = self.neighbour_counts()
        return [
            location
            for location, tally in counts.items()
            if not tally.is_satisfied(threshold)
        ]

    def satisfied_fraction(
        self,
        threshold: float,
        counts: Optional[Dict[GridLocation, NeighbourCounts]] = None,
    ) -> float:
        """Return the share of agents that meet ``threshold``."""

        threshold = validate_threshold(threshold)
        if counts is None:
            counts = self.neighbour_counts()
        if not counts:
            return 1.0
        satisfied = sum(1 for tally in counts.values() if tally.is_satisfied(threshold))
        return satisfied / len(counts)

    def segregation_index(self) -> float:
        """Mean same-group share over agents with at least one occupied neighbour."""

        ratios = [
            ratio
            for ratio in (tally.ratio() for tally in self.neighbour_counts().values())
            if ratio is not None
        ]
        if not ratios:
            return 0.0
        return sum(ratios) / len(ratios)

    def group_counts(self) -> Dict[int, int]:
        """Return the number of agents in each group."""

        totals: Dict[int, int] = {}
        for _, agent in self.occupied():
            totals[agent.group] = totals.get(agent.group, 0) + 1
        return dict(sorted(totals.items()))

    def layout(self) -> List[List[Optional[int]]]:
        """Return ``rows[y][x]`` of group ids with ``None`` for empty cells."""

        return [
            [agent.group if agent is not None else None for agent in row]
            for row in self._cells
        ]

    def __repr__(self) -> str:
        return (
            f"SegregationGrid(width={self.width}, height={self.height}, "
            f"agents={len(self.occupied())})"
        )


__all__ = [
    "Agent",
    "ConfigurationError",
    "GridLocation",
    "InvalidStateError",
    "MOORE_OFFSETS",
    "NeighbourCounts",
    "SchellingError",
    "SegregationGrid",
    "validate_dimensions",
    "validate_threshold",
]
