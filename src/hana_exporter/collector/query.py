"""
Scrapers that are one SQL statement plus a row mapper.

Subclasses set `query` and implement `emit_row`; the base class handles
the connection, streaming and error conversion.
"""

from __future__ import annotations

from abc import abstractmethod
from contextlib import closing
from typing import Any, Optional, Sequence

from hana_exporter import db
from hana_exporter.collector.base import Emit, ScrapeError, Scraper
from hana_exporter.config import ConnectionDescriptor


class QueryScraper(Scraper):

    query: str = ""

    def __init__(self, connect: Optional[db.Connect] = None):
        self._connect = connect or db.connect

    def scrape(self, conn: ConnectionDescriptor, emit: Emit) -> None:
        try:
            # closing() so a failing emit_row releases the connection right away
            with closing(db.iter_rows(self._connect, conn, self.query)) as rows:
                for row in rows:
                    self.emit_row(row, emit)
        except db.DatabaseError as exc:
            raise ScrapeError(f"{self.name()}: query failed: {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ScrapeError(f"{self.name()}: malformed row: {exc}") from exc

    @abstractmethod
    def emit_row(self, row: Sequence[Any], emit: Emit) -> None:
        ...


def number(value: Any) -> Optional[float]:
    """Column value as float. NULL stays None so callers can skip it."""
    if value is None:
        return None
    return float(value)
