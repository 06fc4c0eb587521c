"""
The collector handed to prometheus_client for every scrape request.

Runs each scraper in its own thread against the shared ConnectionDescriptor,
waits for all of them (bounded by an optional deadline), and turns their
observations into metric families. A scraper that fails or runs out of time
contributes nothing but a success=0 gauge; the others are unaffected.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence

from prometheus_client.core import GaugeMetricFamily, Metric

from hana_exporter.collector.base import (
    COUNTER,
    Observation,
    ObservationSink,
    ScrapeError,
    Scraper,
    family_name,
)
from hana_exporter.config import ConnectionDescriptor

log = logging.getLogger(__name__)

NAMESPACE = "hana"
EXPORTER = "exporter"


@dataclass
class ScrapeOutcome:
    name: str
    duration: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Exporter:
    """Collects every given scraper on each call to collect()."""

    def __init__(
        self,
        conn: ConnectionDescriptor,
        scrapers: Sequence[Scraper],
        timeout: Optional[float] = None,
    ):
        self._conn = conn
        self._scrapers = list(scrapers)
        self._timeout = timeout

    def collect(self) -> Iterator[Metric]:
        started = time.monotonic()
        sink = ObservationSink()
        outcomes = self._scrape_all(sink, started)

        for outcome in outcomes:
            if outcome.ok:
                yield from _families(sink.observations(outcome.name))

        prefix = f"{NAMESPACE}_{EXPORTER}"
        if outcomes:
            success = GaugeMetricFamily(
                f"{prefix}_collector_success",
                "Whether a collector succeeded.",
                labels=["collector"],
            )
            duration = GaugeMetricFamily(
                f"{prefix}_collector_duration_seconds",
                "Collector time duration.",
                labels=["collector"],
            )
            for outcome in outcomes:
                success.add_metric([outcome.name], 1.0 if outcome.ok else 0.0)
                duration.add_metric([outcome.name], outcome.duration)
            yield success
            yield duration

        yield GaugeMetricFamily(
            f"{prefix}_scrape_success",
            "Whether every collector succeeded in this scrape.",
            value=1.0 if all(o.ok for o in outcomes) else 0.0,
        )
        yield GaugeMetricFamily(
            f"{prefix}_scrape_duration_seconds",
            "Time the whole scrape took.",
            value=time.monotonic() - started,
        )

    def _scrape_all(self, sink: ObservationSink, started: float) -> List[ScrapeOutcome]:
        if not self._scrapers:
            return []

        deadline = None if self._timeout is None else started + self._timeout
        results: Dict[str, ScrapeOutcome] = {}

        # Daemon threads: a scraper stuck past the deadline is abandoned
        # and must not hold up interpreter shutdown.
        workers = []
        for scraper in self._scrapers:
            worker = threading.Thread(
                target=self._run_worker,
                args=(scraper, sink, results),
                name=f"scrape-{scraper.name()}",
                daemon=True,
            )
            worker.start()
            workers.append((scraper, worker))

        outcomes: List[ScrapeOutcome] = []
        for scraper, worker in workers:
            name = scraper.name()
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)
            if worker.is_alive():
                sink.discard(name)
                log.warning("Scraper %s timed out after %.2fs", name, self._timeout)
                outcomes.append(ScrapeOutcome(
                    name=name,
                    duration=time.monotonic() - started,
                    error=f"timed out after {self._timeout:.2f}s",
                ))
                continue

            outcome = results.get(name)
            if outcome is None:
                sink.discard(name)
                outcome = ScrapeOutcome(
                    name=name,
                    duration=time.monotonic() - started,
                    error="scraper exited without a result",
                )
            outcomes.append(outcome)
        return outcomes

    def _run_worker(self, scraper: Scraper, sink: ObservationSink, results: Dict[str, ScrapeOutcome]):
        results[scraper.name()] = self._scrape_one(scraper, sink)

    def _scrape_one(self, scraper: Scraper, sink: ObservationSink) -> ScrapeOutcome:
        name = scraper.name()
        emit = sink.emitter(name)
        start = time.monotonic()
        error = None
        try:
            scraper.scrape(self._conn, emit)
        except ScrapeError as exc:
            if sink.is_discarded(name):
                # Already reported as timed out
                log.debug("Abandoned scraper %s stopped: %s", name, exc)
            else:
                log.warning("Error from scraper %s: %s", name, exc)
            error = str(exc)
        except Exception as exc:
            log.exception("Unexpected error from scraper %s", name)
            error = f"{type(exc).__name__}: {exc}"

        if error is not None:
            sink.discard(name)
        duration = time.monotonic() - start
        log.debug("Scraper %s finished in %.3fs (ok=%s)", name, duration, error is None)
        return ScrapeOutcome(name=name, duration=duration, error=error)


def _families(observations: List[Observation]) -> Iterator[Metric]:
    """Group one scraper's observations by family, keeping emission order."""
    families: Dict[str, Metric] = {}
    for obs in observations:
        base = family_name(obs)
        sample_name = base + "_total" if obs.type == COUNTER else obs.name

        family = families.get(base)
        if family is None:
            family = Metric(base, obs.help_text or base, obs.type)
            families[base] = family
        family.add_sample(sample_name, dict(obs.labels), obs.value)

    yield from families.values()
