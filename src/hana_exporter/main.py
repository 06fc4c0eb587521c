"""
hana_exporter entry point.

Usage:
    hana_exporter                                 Serve /metrics on :9105
    hana_exporter --no-collect.hostresource       Serve without one scraper
    hana_exporter scrapers                        List scrapers and their state
    hana_exporter scrape --collect globalstatus   One-shot scrape to stdout
"""

from __future__ import annotations

import logging

import click
from prometheus_client import REGISTRY, CollectorRegistry, generate_latest

from hana_exporter.collector.exporter import Exporter
from hana_exporter.collector.registry import SCRAPERS, filter_scrapers, resolve_enabled
from hana_exporter.config import DEFAULT_HANA_CNF, ConfigError, resolve_connection
from hana_exporter.version import PROGRAM, BuildInfoCollector, version_string
from hana_exporter.web import (
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_METRICS_PATH,
    DEFAULT_TIMEOUT_OFFSET,
    parse_listen_address,
    serve,
)


log = logging.getLogger("hana_exporter")

_TOGGLE_PREFIX = "collect_"


def scraper_flags(func):
    """Add a --collect.<name>/--no-collect.<name> flag for every registered scraper."""
    for scraper, enabled in reversed(list(SCRAPERS.items())):
        name = scraper.name()
        func = click.option(
            f"--collect.{name}/--no-collect.{name}",
            f"{_TOGGLE_PREFIX}{name}",
            default=enabled,
            show_default=True,
            help=scraper.help(),
        )(func)
    return func


def _check_listen_address(ctx, param, value):
    try:
        parse_listen_address(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    return value


def _connection(ctx):
    try:
        return resolve_connection(ctx.obj["hana_cnf"])
    except ConfigError as exc:
        log.critical("%s", exc)
        raise SystemExit(1)


@click.group(invoke_without_command=True, context_settings={"auto_envvar_prefix": "HANA_EXPORTER"})
@click.version_option(version=version_string(), prog_name=PROGRAM, message="%(version)s")
@click.option("--web.listen-address", "listen_address", default=DEFAULT_LISTEN_ADDRESS,
              show_default=True, callback=_check_listen_address,
              help="Address to listen on for web interface and telemetry.")
@click.option("--web.telemetry-path", "telemetry_path", default=DEFAULT_METRICS_PATH,
              show_default=True, help="Path under which to expose metrics.")
@click.option("--web.timeout-offset", "timeout_offset", default=DEFAULT_TIMEOUT_OFFSET,
              show_default=True, type=click.FloatRange(min=0),
              help="Seconds subtracted from Prometheus' scrape timeout to leave room for the response.")
@click.option("--web.scrape-timeout", "scrape_timeout", default=None, type=click.FloatRange(min=0, min_open=True),
              help="Scrape deadline in seconds when Prometheus does not send one.  [default: none]")
@click.option("--config.hana-cnf", "hana_cnf", default=DEFAULT_HANA_CNF, show_default=True,
              help="Path to hana.cnf file to read HANA credentials from.")
@click.option("--log.level", "log_level", default="info", show_default=True,
              type=click.Choice(["debug", "info", "warning", "error"]),
              help="Only log messages with the given severity or above.")
@scraper_flags
@click.pass_context
def cli(ctx, listen_address: str, telemetry_path: str, timeout_offset: float,
        scrape_timeout: float, hana_cnf: str, log_level: str, **toggles):
    """Prometheus exporter for SAP HANA."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.ensure_object(dict)
    ctx.obj["hana_cnf"] = hana_cnf
    ctx.obj["toggles"] = {
        key[len(_TOGGLE_PREFIX):]: value
        for key, value in toggles.items()
        if key.startswith(_TOGGLE_PREFIX)
    }
    ctx.obj["enabled"] = resolve_enabled(ctx.obj["toggles"])

    if ctx.invoked_subcommand is not None:
        return

    log.info("Starting %s", version_string())
    conn = _connection(ctx)

    log.info("Enabled scrapers:")
    for scraper in ctx.obj["enabled"]:
        log.info(" --collect.%s", scraper.name())

    REGISTRY.register(BuildInfoCollector())
    serve(
        listen_address,
        conn,
        ctx.obj["enabled"],
        REGISTRY,
        metrics_path=telemetry_path,
        timeout_offset=timeout_offset,
        default_timeout=scrape_timeout,
    )


@cli.command()
@click.pass_context
def scrapers(ctx):
    """List every scraper, its default and whether it is enabled."""
    from rich.console import Console
    from rich.table import Table

    enabled = set(ctx.obj["enabled"])

    table = Table(show_header=True, header_style="bold")
    table.add_column("Scraper")
    table.add_column("Default", justify="center")
    table.add_column("Enabled", justify="center")
    table.add_column("Description")

    for scraper, default in SCRAPERS.items():
        on = scraper in enabled
        table.add_row(
            f"[cyan]{scraper.name()}[/cyan]",
            "on" if default else "off",
            "[green]yes[/green]" if on else "[dim]no[/dim]",
            scraper.help(),
        )

    Console().print(table)


@cli.command()
@click.option("--collect", "selectors", multiple=True,
              help="Only run this scraper (repeatable), like collect[] on /metrics.")
@click.option("--timeout", default=None, type=click.FloatRange(min=0, min_open=True),
              help="Deadline for the whole scrape in seconds.")
@click.pass_context
def scrape(ctx, selectors, timeout):
    """Run one scrape against the database and print the exposition."""
    conn = _connection(ctx)
    selected = filter_scrapers(ctx.obj["enabled"], selectors)

    registry = CollectorRegistry(auto_describe=False)
    registry.register(Exporter(conn, selected, timeout=timeout))
    click.echo(generate_latest(registry).decode(), nl=False)


if __name__ == "__main__":
    cli()
