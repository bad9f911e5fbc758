# src/dchdigi/physics/seeding.py
from __future__ import annotations
from dataclasses import dataclass
import hashlib
import threading

import numpy as np


class UniqueIDGenerator:
    """
    Deterministic per-event seed material from (run, event).

    The service name is hashed into the entropy so that two generators with
    different names never hand out the same stream for the same event.
    """

    def __init__(self, name: str = "uidSvc", salt: int = 0):
        self.name = name
        self.salt = int(salt)
        digest = hashlib.sha256(name.encode("utf-8")).digest()
        self._name_key = int.from_bytes(digest[:8], "little")

    def entropy(self, run: int, event: int) -> tuple[int, int, int, int]:
        run, event = int(run), int(event)
        if run < 0 or event < 0:
            raise ValueError(f"run and event numbers must be >= 0 (got run={run}, event={event})")
        return (self._name_key, self.salt, run, event)

    def unique_id(self, run: int, event: int) -> int:
        """64-bit id, handy for logging the seed actually used."""
        ss = np.random.SeedSequence(self.entropy(run, event))
        return int(ss.generate_state(1, dtype=np.uint64)[0])


@dataclass(frozen=True)
class EventStreams:
    """Random streams of one event: one for smearing, one for cluster sampling."""
    run: int
    event: int
    smear: np.random.Generator
    clusters: np.random.Generator


_local = threading.local()


def prepare_random_engine(generator: UniqueIDGenerator, run: int, event: int) -> EventStreams:
    """
    Reseed this thread's streams for a new event and return them.

    Must be called at the start of every event: nothing is carried over from
    a previous event, so the output depends only on (run, event) and the hit
    order inside the event.
    """
    ss = np.random.SeedSequence(generator.entropy(run, event))
    smear_ss, cluster_ss = ss.spawn(2)
    streams = EventStreams(
        run=int(run),
        event=int(event),
        smear=np.random.Generator(np.random.PCG64(smear_ss)),
        clusters=np.random.Generator(np.random.PCG64(cluster_ss)),
    )
    _local.streams = streams
    return streams


def current_streams() -> EventStreams:
    streams = getattr(_local, "streams", None)
    if streams is None:
        raise RuntimeError("random engine not prepared on this thread; call prepare_random_engine() first")
    return streams
