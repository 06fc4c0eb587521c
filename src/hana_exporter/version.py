"""Build information, exposed as <program>_build_info and printed by --version."""

from __future__ import annotations

import platform

from prometheus_client.core import GaugeMetricFamily

from hana_exporter import __version__

PROGRAM = "hana_exporter"


def version_string(program: str = PROGRAM) -> str:
    return f"{program}, version {__version__} (python {platform.python_version()}, {platform.system().lower()})"


class BuildInfoCollector:
    """Constant gauge carrying the version labels, like every Prometheus exporter has."""

    def __init__(self, program: str = PROGRAM):
        self._program = program

    def collect(self):
        info = GaugeMetricFamily(
            f"{self._program}_build_info",
            f"A metric with a constant '1' value labeled by version and python version from which {self._program} was built.",
            labels=["version", "pythonversion", "platform"],
        )
        info.add_metric(
            [__version__, platform.python_version(), platform.system().lower()],
            1.0,
        )
        yield info
