"""
Base scraper interface.

A scraper is one unit of metric collection: it queries a single aspect of
HANA state and pushes Observations into the emit callable it is given.
The orchestration in exporter.py only ever talks to this interface, so
adding a scraper never touches the fan-out code.
"""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping

from hana_exporter.config import ConnectionDescriptor

COUNTER = "counter"
GAUGE = "gauge"

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class ScrapeError(Exception):
    """A scraper could not produce its observations."""


@dataclass(frozen=True)
class Observation:
    name: str
    value: float
    labels: Mapping[str, str] = field(default_factory=dict)
    type: str = GAUGE  # "gauge" or "counter"
    help_text: str = ""

    def __post_init__(self):
        if not _METRIC_NAME_RE.match(self.name):
            raise ValueError(f"invalid metric name: {self.name!r}")
        if self.type not in (COUNTER, GAUGE):
            raise ValueError(f"unsupported metric type for {self.name}: {self.type!r}")
        for key in self.labels:
            if not _LABEL_NAME_RE.match(key) or key.startswith("__"):
                raise ValueError(f"invalid label name on {self.name}: {key!r}")
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "labels", {k: str(v) for k, v in self.labels.items()})


Emit = Callable[[Observation], None]


def family_name(observation: Observation) -> str:
    """Name of the metric family an observation belongs to (counters drop _total)."""
    if observation.type == COUNTER and observation.name.endswith("_total"):
        return observation.name[:-len("_total")]
    return observation.name


class Scraper(ABC):
    """Interface for everything that can scrape HANA."""

    @abstractmethod
    def name(self) -> str:
        """Identifier used for --collect.<name> and the collect[] parameter."""
        ...

    @abstractmethod
    def help(self) -> str:
        """One line description, shown as flag help."""
        ...

    @abstractmethod
    def scrape(self, conn: ConnectionDescriptor, emit: Emit) -> None:
        """Query the database and emit observations as they are produced.

        Must raise ScrapeError for anything that goes wrong with the query
        or its results.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name()}>"


class ObservationSink:
    """Collects the observations of one collection run.

    Every scraper writes to its own ordered stream; the lock serializes
    writers running in different threads. Streams of failed or timed out
    scrapers are discarded and reject further writes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._streams: Dict[str, List[Observation]] = {}
        self._types: Dict[str, Dict[str, str]] = {}
        self._discarded = set()

    def emitter(self, scraper_name: str) -> Emit:
        with self._lock:
            self._streams.setdefault(scraper_name, [])
            self._types.setdefault(scraper_name, {})

        def emit(observation: Observation) -> None:
            self.emit(scraper_name, observation)

        return emit

    def emit(self, scraper_name: str, observation: Observation) -> None:
        with self._lock:
            if scraper_name in self._discarded:
                raise ScrapeError(f"{scraper_name}: scrape was abandoned")

            types = self._types.setdefault(scraper_name, {})
            family = family_name(observation)
            known = types.setdefault(family, observation.type)
            if known != observation.type:
                raise ScrapeError(
                    f"{scraper_name}: {family} emitted as both {known} and {observation.type}"
                )
            self._streams.setdefault(scraper_name, []).append(observation)

    def is_discarded(self, scraper_name: str) -> bool:
        with self._lock:
            return scraper_name in self._discarded

    def discard(self, scraper_name: str) -> None:
        with self._lock:
            self._discarded.add(scraper_name)
            self._streams.pop(scraper_name, None)

    def observations(self, scraper_name: str) -> List[Observation]:
        with self._lock:
            return list(self._streams.get(scraper_name, []))
