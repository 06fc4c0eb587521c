"""Tests for the command line: scraper flags, listing and one-shot scrapes."""

from click.testing import CliRunner

from hana_exporter import __version__
from hana_exporter.main import cli


def _row(output, name):
    for line in output.splitlines():
        if f" {name} " in line:
            return line
    raise AssertionError(f"{name} not listed:\n{output}")


def test_help_lists_scraper_flags():
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "--collect.globalstatus / --no-collect.globalstatus" in result.output
    assert "--collect.connections / --no-collect.connections" in result.output


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"hana_exporter, version {__version__}" in result.output


def test_scrapers_shows_defaults():
    result = CliRunner().invoke(cli, ["scrapers"])
    assert result.exit_code == 0
    assert "yes" in _row(result.output, "globalstatus")
    assert "yes" in _row(result.output, "hostresource")
    assert "no" in _row(result.output, "connections")


def test_scrapers_respects_flags():
    result = CliRunner().invoke(cli, ["--collect.connections", "--no-collect.hostresource", "scrapers"])
    assert result.exit_code == 0
    assert "yes" in _row(result.output, "connections")
    assert "yes" not in _row(result.output, "hostresource")


def test_scrapers_respects_env_toggle():
    result = CliRunner().invoke(cli, ["scrapers"], env={"HANA_EXPORTER_COLLECT_CONNECTIONS": "true"})
    assert result.exit_code == 0
    assert "yes" in _row(result.output, "connections")


def test_bad_listen_address_is_usage_error():
    result = CliRunner().invoke(cli, ["--web.listen-address", "nowhere", "scrapers"])
    assert result.exit_code == 2


def test_scrape_fails_on_bad_credentials():
    result = CliRunner().invoke(
        cli,
        ["--config.hana-cnf", "/nonexistent/hana.cnf", "scrape"],
        env={"DATA_SOURCE_NAME": ""},
    )
    assert result.exit_code == 1


def test_scrape_fails_on_malformed_dsn():
    result = CliRunner().invoke(cli, ["scrape"], env={"DATA_SOURCE_NAME": "alice@db1"})
    assert result.exit_code == 1


def test_scrape_with_unknown_selector_prints_meta_metrics():
    result = CliRunner().invoke(
        cli,
        ["scrape", "--collect", "nothing"],
        env={"DATA_SOURCE_NAME": "alice:secret@db1:30015"},
    )
    assert result.exit_code == 0
    assert "hana_exporter_scrape_success 1.0" in result.output
    assert "hana_exporter_collector_success" not in result.output
