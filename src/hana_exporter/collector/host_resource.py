"""Host memory and CPU time from M_HOST_RESOURCE_UTILIZATION."""

from __future__ import annotations

from typing import Any, Sequence

from hana_exporter.collector.base import COUNTER, Emit, Observation
from hana_exporter.collector.query import QueryScraper, number

# CPU time columns are cumulative milliseconds, index -> mode label
_CPU_MODES = [(3, "user"), (4, "system"), (5, "iowait"), (6, "idle")]


class ScrapeHostResource(QueryScraper):

    query = """
        SELECT HOST, FREE_PHYSICAL_MEMORY, USED_PHYSICAL_MEMORY,
               TOTAL_CPU_USER_TIME, TOTAL_CPU_SYSTEM_TIME,
               TOTAL_CPU_WIO_TIME, TOTAL_CPU_IDLE_TIME
          FROM SYS.M_HOST_RESOURCE_UTILIZATION
    """

    def name(self) -> str:
        return "hostresource"

    def help(self) -> str:
        return "Collect host memory and CPU time from SYS.M_HOST_RESOURCE_UTILIZATION"

    def emit_row(self, row: Sequence[Any], emit: Emit) -> None:
        host = row[0]

        free = number(row[1])
        if free is not None:
            emit(Observation("hana_host_memory_free_bytes", free, {"host": host},
                             help_text="Free physical memory on the host."))
        used = number(row[2])
        if used is not None:
            emit(Observation("hana_host_memory_used_bytes", used, {"host": host},
                             help_text="Used physical memory on the host."))

        for index, mode in _CPU_MODES:
            millis = number(row[index])
            if millis is None:
                continue
            emit(Observation(
                "hana_host_cpu_seconds_total",
                millis / 1000.0,
                {"host": host, "mode": mode},
                type=COUNTER,
                help_text="CPU time spent on the host per mode.",
            ))
