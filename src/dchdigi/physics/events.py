# src/dchdigi/physics/events.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .hits import RawHit, DigitizedHit, AssociationLink


@dataclass(slots=True)
class SimEvent:
    """
    One event's sim-hit collection, in the order the simulation wrote it.

    The (run, event) pair seeds the digitization of this event.
    """
    run: int
    event: int
    hits: List[RawHit] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DigiEvent:
    """Digitization output of one event: digis and links mirror the input order."""
    run: int
    event: int
    digis: List[DigitizedHit] = field(default_factory=list)
    links: List[AssociationLink] = field(default_factory=list)
