"""FastAPI router with run and websocket streaming endpoints for the simulation."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi import WebSocket, WebSocketDisconnect

from schelling.logic import ConfigurationError
from schelling.runtime import DEFAULT_EMPTY_FRACTION
from schelling.runtime import DEFAULT_GROUPS
from schelling.runtime import DEFAULT_HEIGHT
from schelling.runtime import DEFAULT_ROUNDS
from schelling.runtime import DEFAULT_THRESHOLD
from schelling.runtime import DEFAULT_WIDTH
from schelling.runtime import SegregationSimulation
from schelling.runtime import SimulationConfig

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_GRID_SIDE = 1000
MAX_ROUNDS = 10_000


def get_simulation_config(
    width: int = Query(DEFAULT_WIDTH, le=MAX_GRID_SIDE, description="Grid width in cells"),
    height: int = Query(DEFAULT_HEIGHT, le=MAX_GRID_SIDE, description="Grid height in cells"),
    groups: int = Query(DEFAULT_GROUPS, description="Number of group identities"),
    empty_fraction: float = Query(DEFAULT_EMPTY_FRACTION, description="Share of empty cells"),
    threshold: float = Query(DEFAULT_THRESHOLD, description="Minimum same-group neighbour share"),
    rounds: int = Query(DEFAULT_ROUNDS, le=MAX_ROUNDS, description="Number of rounds to run"),
    seed: Optional[int] = Query(None, description="Seed for the random source"),
    exact_counts: bool = Query(False, description="Use an exact group partition"),
    stop_when_stable: bool = Query(False, description="Stop after a round with no moves"),
) -> SimulationConfig:
    """Collect simulation parameters from the query string."""

    return SimulationConfig(
        width=width,
        height=height,
        groups=groups,
        empty_fraction=empty_fraction,
        threshold=threshold,
        rounds=rounds,
        seed=seed,
        exact_counts=exact_counts,
        stop_when_stable=stop_when_stable,
    )


def get_update_interval() -> float:
    """Return the delay between streamed rounds in seconds."""

    return SegregationSimulation.update_interval_seconds


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Return a simple response to verify the service is reachable."""

    logger.debug("Health check requested")
    return {"status": "ok"}


@router.post("/runs")
def create_run(config: SimulationConfig = Depends(get_simulation_config)) -> dict[str, Any]:
    """Run a complete simulation and return every round plus the final grid."""

    try:
        simulation = SegregationSimulation.from_config(config, log_callback=logger.debug)
        result = simulation.run(
            config.rounds,
            config.threshold,
            stop_when_stable=config.stop_when_stable,
        )
    except ConfigurationError as exc:
        logger.debug("Rejected simulation parameters: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    logger.info(
        "Completed run of %d round(s) on %dx%d grid",
        len(result.steps),
        config.width,
        config.height,
    )
    return {
        "config": config.to_dict(),
        "rounds": [step.to_dict() for step in result.steps],
        "converged": result.converged,
        "snapshot": result.snapshot.to_dict(),
    }


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    config: SimulationConfig = Depends(get_simulation_config),
    update_interval: float = Depends(get_update_interval),
) -> None:
    """Stream one snapshot per simulation round to a connected websocket client."""

    await websocket.accept()
    logger.info("Websocket connection accepted from %s", websocket.client)

    try:
        simulation = SegregationSimulation.from_config(config, log_callback=logger.debug)
    except ConfigurationError as exc:
        logger.debug("Rejected websocket simulation parameters: %s", exc)
        await websocket.send_text(json.dumps({"error": str(exc)}))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        await websocket.send_text(simulation.snapshot().to_json())
        for _ in range(config.rounds):
            await asyncio.sleep(update_interval)
            result = simulation.step(config.threshold)
            message = {
                "result": result.to_dict(),
                "snapshot": simulation.snapshot().to_dict(),
            }
            await websocket.send_text(json.dumps(message))
            if config.stop_when_stable and result.moved == 0:
                break
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("Websocket client disconnected: %s", websocket.client)
    except RuntimeError as exc:
        logger.info("Websocket closed while streaming: %s", exc)
    except Exception as exc:
        logger.exception("Unexpected websocket error: %s", exc)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        raise
