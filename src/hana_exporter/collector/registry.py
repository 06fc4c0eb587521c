"""
Every scraper the exporter knows about, and which of them run.

SCRAPERS is the only place a new scraper has to be added: the CLI builds a
--collect.<name> flag for each entry, defaulting to the flag given here.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from hana_exporter.collector.base import Scraper
from hana_exporter.collector.connections import ScrapeConnections
from hana_exporter.collector.global_status import ScrapeGlobalStatus
from hana_exporter.collector.host_resource import ScrapeHostResource

# Scraper -> enabled by default
SCRAPERS: Dict[Scraper, bool] = {
    ScrapeGlobalStatus(): True,
    ScrapeHostResource(): True,
    ScrapeConnections(): False,
}

_NAME_RE = re.compile(r"^[a-z][a-z0-9]*$")


def check_names(registry: Mapping[Scraper, bool]) -> None:
    """Raise ValueError unless every scraper name is well formed and unique."""
    seen = set()
    for scraper in registry:
        name = scraper.name()
        if not _NAME_RE.match(name):
            raise ValueError(f"invalid scraper name {name!r}: use lowercase letters and digits only")
        if name in seen:
            raise ValueError(f"duplicate scraper name {name!r}")
        seen.add(name)


def resolve_enabled(
    toggles: Mapping[str, Optional[bool]],
    registry: Mapping[Scraper, bool] = SCRAPERS,
) -> Tuple[Scraper, ...]:
    """The enabled set: scrapers whose toggle is on, falling back to the default.

    `toggles` is keyed by scraper name; a missing or None entry means the
    operator did not say, so the registry default applies.
    """
    check_names(registry)
    enabled: List[Scraper] = []
    for scraper, default in registry.items():
        toggle = toggles.get(scraper.name())
        if default if toggle is None else toggle:
            enabled.append(scraper)
    return tuple(enabled)


def filter_scrapers(enabled: Sequence[Scraper], selectors: Iterable[str]) -> List[Scraper]:
    """Narrow the enabled set to the names given in collect[].

    No selectors means no restriction. Names that match nothing are
    ignored rather than rejected.
    """
    wanted = set(selectors)
    if not wanted:
        return list(enabled)
    return [scraper for scraper in enabled if scraper.name() in wanted]
