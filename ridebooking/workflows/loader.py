"""Load JSONL workflow definitions into RideWorkflowDef objects."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from ridebooking.workflows.schema import RideStateDef, RideWorkflowDef

DEFAULT_WORKFLOW_PATH = Path(__file__).resolve().parent / "ride_booking.jsonl"


def load_workflow_jsonl(path: str | Path) -> RideWorkflowDef:
    """Load a single workflow from a JSONL file.

    The file holds one JSON object per line; the first non-empty line is
    the workflow. States are nested inside the top-level ``states`` dict.
    """
    path = Path(path)
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        return _parse_workflow(json.loads(line))

    raise ValueError(f"No workflow found in {path}")


@lru_cache(maxsize=1)
def default_workflow() -> RideWorkflowDef:
    return load_workflow_jsonl(DEFAULT_WORKFLOW_PATH)


def _parse_workflow(data: dict) -> RideWorkflowDef:
    states: dict[str, RideStateDef] = {}
    for state_id, state_data in data.get("states", {}).items():
        state_data.setdefault("id", state_id)
        states[state_id] = RideStateDef(**state_data)

    data["states"] = states
    workflow = RideWorkflowDef(**data)

    for state in workflow.states.values():
        for intent, target in state.transitions.items():
            if target not in workflow.states:
                raise ValueError(
                    f"State {state.id!r} routes intent {intent!r} to unknown state {target!r}"
                )
    if workflow.initial_state not in workflow.states:
        raise ValueError(f"Unknown initial state {workflow.initial_state!r}")
    return workflow
