"""Tests for the segregation simulation runtime helpers."""

from __future__ import annotations

import json
import random

import pytest

from schelling.logic import ConfigurationError
from schelling.logic import GridLocation
from schelling.logic import InvalidStateError
from schelling.logic import SegregationGrid
from schelling.runtime import SegregationSimulation
from schelling.runtime import SimulationConfig
from schelling.runtime import StepResult


MIXED_LAYOUT = [
    [1, 1, 2],
    [1, None, 2],
    [2, None, 1],
]

# Empty cells plus the cells vacated by the three unsatisfied agents, row-major.
MIXED_DESTINATIONS = [
    GridLocation(1, 1),
    GridLocation(2, 1),
    GridLocation(0, 2),
    GridLocation(1, 2),
    GridLocation(2, 2),
]


class KeepOrderRandom:
    """Random source whose shuffle leaves destinations in row-major order."""

    def shuffle(self, sequence) -> None:
        return None


class ReverseRandom:
    """Random source whose shuffle reverses the destination order."""

    def shuffle(self, sequence) -> None:
        sequence.reverse()


def _agent_at(snapshot, x: int, y: int):
    return next(cell.agent for cell in snapshot.cells if cell.location == GridLocation(x, y))


def test_snapshot_serializes_to_json() -> None:
    simulation = SegregationSimulation(random_seed=42)
    simulation.load_layout([[1, None], [2, 1]])

    payload = json.loads(simulation.snapshot().to_json())

    assert payload["grid"] == {"width": 2, "height": 2}
    assert payload["round_number"] == 0
    assert payload["cells"][0] == {"location": {"x": 0, "y": 0}, "group": 1, "agent": 0}
    assert payload["cells"][1] == {"location": {"x": 1, "y": 0}, "group": None, "agent": None}
    assert len(payload["cells"]) == 4


@pytest.mark.parametrize(
    ("dimensions", "k", "p_empty"),
    [
        ((0, 5), 2, 0.2),
        ((5, -1), 2, 0.2),
        ((5,), 2, 0.2),
        ((5.0, 5), 2, 0.2),
        ((5, 5), 0, 0.2),
        ((5, 5), 2, 1.0),
        ((5, 5), 2, -0.1),
    ],
)
def test_initialize_rejects_invalid_parameters(dimensions, k, p_empty) -> None:
    simulation = SegregationSimulation(random_seed=1)

    with pytest.raises(ConfigurationError):
        simulation.initialize(dimensions, k, p_empty)

    assert not simulation.is_initialized


def test_operations_require_initialized_grid() -> None:
    simulation = SegregationSimulation(random_seed=1)

    with pytest.raises(InvalidStateError):
        simulation.step(0.5)
    with pytest.raises(InvalidStateError):
        simulation.run(3, 0.5)
    with pytest.raises(InvalidStateError):
        simulation.snapshot()


def test_initialize_populates_every_cell() -> None:
    simulation = SegregationSimulation(random_seed=5)

    snapshot = simulation.initialize((7, 4), 3, 0.25)

    assert len(snapshot.cells) == 28
    assert {(cell.location.x, cell.location.y) for cell in snapshot.cells} == {
        (x, y) for x in range(7) for y in range(4)
    }
    assert set(snapshot.group_counts()) <= {1, 2, 3}


def test_initialize_without_empty_fraction_fills_grid() -> None:
    simulation = SegregationSimulation(random_seed=8)

    snapshot = simulation.initialize((4, 4), 1, 0.0)

    assert snapshot.group_counts() == {1: 16}


def test_independent_draw_matches_empty_fraction_on_average() -> None:
    total_cells = 0
    total_empty = 0
    for seed in range(50):
        simulation = SegregationSimulation(random_seed=seed)
        snapshot = simulation.initialize((20, 20), 2, 0.2)
        total_cells += len(snapshot.cells)
        total_empty += sum(1 for cell in snapshot.cells if cell.is_empty)

    assert total_empty / total_cells == pytest.approx(0.2, abs=0.02)


def test_exact_counts_partition_population() -> None:
    simulation = SegregationSimulation(random_seed=3)

    snapshot = simulation.initialize((10, 10), 3, 0.25, exact_counts=True)

    assert sum(snapshot.group_counts().values()) == 75
    assert snapshot.group_counts() == {1: 25, 2: 25, 3: 25}


def test_threshold_zero_moves_nobody() -> None:
    simulation = SegregationSimulation(random_seed=11)
    before = simulation.initialize((12, 12), 3, 0.2).layout()

    result = simulation.step(0.0)

    assert result.moved == 0
    assert result.satisfied_fraction == 1.0
    assert simulation.snapshot().layout() == before


def test_threshold_one_moves_mixed_agents() -> None:
    simulation = SegregationSimulation(random_seed=3)
    simulation.initialize((10, 10), 2, 0.2)

    result = simulation.step(1.0)

    assert result.moved > 0
    assert result.round_number == 1


def test_step_conserves_population_and_groups() -> None:
    simulation = SegregationSimulation(random_seed=21)
    initial = simulation.initialize((15, 15), 3, 0.3)
    initial_agents = sorted(
        (cell.agent, cell.group) for cell in initial.cells if not cell.is_empty
    )

    for _ in range(10):
        simulation.step(0.7)
        snapshot = simulation.snapshot()
        agents = sorted((cell.agent, cell.group) for cell in snapshot.cells if not cell.is_empty)
        assert agents == initial_agents
        assert snapshot.group_counts() == initial.group_counts()


def test_same_seed_and_start_produce_identical_rounds() -> None:
    first = SegregationSimulation(random_seed=42)
    second = SegregationSimulation(random_seed=42)
    first.initialize((10, 10), 3, 0.2)
    second.initialize((10, 10), 3, 0.2)

    first_result = first.run(5, 0.6)
    second_result = second.run(5, 0.6)

    assert first_result.steps == second_result.steps
    assert first_result.snapshot == second_result.snapshot


def test_same_seed_and_loaded_layout_produce_identical_step() -> None:
    first = SegregationSimulation(random_seed=7)
    second = SegregationSimulation(random_seed=7)
    first.load_layout(MIXED_LAYOUT)
    second.load_layout(MIXED_LAYOUT)

    assert first.step(0.5) == second.step(0.5)
    assert first.snapshot() == second.snapshot()


def test_mixed_grid_relocates_unsatisfied_agents_in_row_major_order() -> None:
    simulation = SegregationSimulation()
    simulation.load_layout(MIXED_LAYOUT)
    simulation._rng = KeepOrderRandom()

    result = simulation.step(0.5)
    snapshot = simulation.snapshot()

    assert result.moved == 3
    assert result.satisfied_fraction == pytest.approx(4 / 7)
    assert snapshot.layout() == [
        [1, 1, 2],
        [1, 2, 2],
        [1, None, None],
    ]
    assert _agent_at(snapshot, 1, 1) == 4
    assert _agent_at(snapshot, 2, 1) == 5
    assert _agent_at(snapshot, 0, 2) == 6


def test_mixed_grid_follows_shuffled_destinations() -> None:
    simulation = SegregationSimulation()
    simulation.load_layout(MIXED_LAYOUT)
    simulation._rng = ReverseRandom()

    result = simulation.step(0.5)

    assert result.moved == 3
    assert simulation.snapshot().layout() == [
        [1, 1, 2],
        [1, None, None],
        [1, 2, 2],
    ]


def test_agents_may_return_to_their_own_cell() -> None:
    simulation = SegregationSimulation()
    simulation.load_layout([[1, 2]])
    simulation._rng = KeepOrderRandom()

    result = simulation.step(1.0)
    snapshot = simulation.snapshot()

    assert result.moved == 2
    assert snapshot.layout() == [[1, 2]]
    assert [cell.agent for cell in snapshot.cells] == [0, 1]


def test_lone_agent_without_neighbours_stays_put() -> None:
    simulation = SegregationSimulation(random_seed=1)
    simulation.load_layout([[1]])

    result = simulation.step(1.0)

    assert result.moved == 0
    assert result.satisfied_fraction == 1.0
    assert simulation.snapshot().layout() == [[1]]


def test_invalid_threshold_leaves_grid_untouched() -> None:
    simulation = SegregationSimulation(random_seed=1)
    simulation.load_layout(MIXED_LAYOUT)

    with pytest.raises(ConfigurationError):
        simulation.step(1.5)

    assert simulation.round_number == 0
    assert simulation.snapshot().layout() == MIXED_LAYOUT


def test_run_continues_without_stop_request() -> None:
    simulation = SegregationSimulation(random_seed=2)
    simulation.load_layout([[1, 1], [1, 1]])

    result = simulation.run(4, 0.5)

    assert [step.moved for step in result.steps] == [0, 0, 0, 0]
    assert result.snapshot.round_number == 4
    assert result.converged


def test_run_stops_when_stable_on_request() -> None:
    simulation = SegregationSimulation(random_seed=2)
    simulation.load_layout([[1, 1], [1, 1]])

    result = simulation.run(4, 0.5, stop_when_stable=True)

    assert len(result.steps) == 1
    assert result.total_moved == 0
    assert simulation.round_number == 1


def test_run_rejects_negative_rounds() -> None:
    simulation = SegregationSimulation(random_seed=2)
    simulation.load_layout([[1]])

    with pytest.raises(ConfigurationError):
        simulation.run(-1, 0.5)


def test_load_layout_tracks_group_count() -> None:
    simulation = SegregationSimulation()

    simulation.load_layout([[1, None], [3, 2]])

    assert simulation.groups == 3
    assert simulation.grid.width == 2


def test_log_callback_receives_round_messages() -> None:
    messages: list[str] = []

    simulation = SegregationSimulation(random_seed=4, log_callback=messages.append)
    simulation.initialize((5, 5), 2, 0.2)
    simulation.run(2, 0.5)

    assert any("Initialized segregation grid 5x5" in message for message in messages)
    assert any(message.startswith("Round 2:") for message in messages)
    assert any("Run finished after 2 round(s)" in message for message in messages)


def test_from_config_builds_initialized_simulation() -> None:
    config = SimulationConfig(width=6, height=3, groups=2, empty_fraction=0.5, seed=9, exact_counts=True)

    simulation = SegregationSimulation.from_config(config)

    assert simulation.snapshot().group_counts() == {1: 5, 2: 4}


def test_config_validation_and_round_trip() -> None:
    config = SimulationConfig.from_dict({"width": 8, "height": 4, "threshold": 0.3, "seed": 5})

    config.validate()
    assert SimulationConfig.from_json(config.to_json()) == config

    with pytest.raises(ConfigurationError):
        SimulationConfig(rounds=-2).validate()
    with pytest.raises(ConfigurationError):
        SimulationConfig(threshold=2.0).validate()


@pytest.mark.parametrize(
    ("size", "p_empty", "occupied"),
    [
        ((10, 1), 0.9, 1),
        ((100, 1), 0.57, 43),
        ((10, 10), 0.7, 30),
    ],
)
def test_exact_counts_use_exact_arithmetic(size, p_empty, occupied) -> None:
    simulation = SegregationSimulation(random_seed=6)

    snapshot = simulation.initialize(size, 1, p_empty, exact_counts=True)

    assert snapshot.group_counts() == {1: occupied}


@pytest.mark.parametrize("seed", [0, 7, 2024])
def test_seeded_step_on_mixed_grid(seed: int) -> None:
    simulation = SegregationSimulation(random_seed=seed)
    simulation.load_layout(MIXED_LAYOUT)

    destinations = list(MIXED_DESTINATIONS)
    random.Random(seed).shuffle(destinations)
    expected = [
        [1, 1, 2],
        [1, None, None],
        [None, None, None],
    ]
    for group, destination in zip((2, 2, 1), destinations):
        expected[destination.y][destination.x] = group

    result = simulation.step(0.5)
    snapshot = simulation.snapshot()

    assert result == StepResult(
        round_number=1,
        moved=3,
        satisfied_fraction=4 / 7,
        segregation_index=SegregationGrid.from_layout(expected).segregation_index(),
    )
    assert snapshot.layout() == expected
    assert [_agent_at(snapshot, x, y) for x, y in ((0, 0), (1, 0), (2, 0), (0, 1))] == [0, 1, 2, 3]
    assert [
        _agent_at(snapshot, destination.x, destination.y) for destination in destinations[:3]
    ] == [4, 5, 6]
    assert sum(1 for cell in snapshot.cells if cell.is_empty) == 2
