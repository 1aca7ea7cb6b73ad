"""Pydantic models for the step-mode booking workflow.

A workflow is a set of states, each with an opening prompt and a map of
intent -> target state. The conversation machine decides the intent; the
workflow decides where it leads.
"""

from __future__ import annotations

from pydantic import BaseModel


class RideStateDef(BaseModel):
    """One state in the step-mode booking workflow."""

    id: str
    on_enter: str = ""                     # Prompt sent when the state is entered
    input_kind: str = "none"               # "location", "time", "driver", ...
    slot: str | None = None                # RideSlots field this state fills
    transitions: dict[str, str] = {}       # intent -> target state
    invalid_message: str = ""              # Reply when input fails validation


class RideWorkflowDef(BaseModel):
    """A complete step-mode workflow definition."""

    id: str
    initial_state: str = ""
    states: dict[str, RideStateDef] = {}
