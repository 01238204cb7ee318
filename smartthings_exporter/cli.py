from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

import click

from . import __version__
from .collector import SmartThingsCollector
from .config import ConfigError, ExporterConfig, build_config, find_config_file, load_config_file, setup_logging
from .mapping import Converted, Dropped, Invalid, default_registry
from .server import serve
from .smartthings import Device, SmartThingsClient, SmartThingsError, load_token


def _load_config(obj: Dict[str, Any], listen_address: Optional[str] = None, telemetry_path: Optional[str] = None) -> ExporterConfig:
    try:
        cfg_path = find_config_file(obj["config_file"])
        cfg: Dict[str, Any] = {}
        if cfg_path:
            cfg = load_config_file(cfg_path)
            logging.info("config_file=%s", cfg_path)
        return build_config(
            cfg,
            token_file=obj["token_file"],
            listen_address=listen_address,
            telemetry_path=telemetry_path,
            endpoints_url=obj["endpoints_url"],
            timeout_seconds=obj["timeout_seconds"],
        )
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def connect(cfg: ExporterConfig) -> Tuple[SmartThingsClient, List[Device]]:
    """Build a client and make sure the upstream answers before serving."""
    try:
        token = load_token(cfg.token_file)
        client = SmartThingsClient(token, cfg.timeout_seconds, cfg.endpoints_url)
        endpoint = client.endpoint_uri()
        devices = client.list_devices()
    except SmartThingsError as e:
        raise click.ClickException(f"cannot connect to SmartThings: {e}") from e

    logging.info("endpoint=%s devices=%d", endpoint, len(devices))
    return client, devices


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="smartthings_exporter")
@click.option("--config.file", "config_file", default=None, help="YAML or JSON config file.")
@click.option("--smartthings.oauth-token.file", "token_file", default=None, help="File containing the SmartThings OAuth token.")
@click.option("--smartthings.endpoints-url", "endpoints_url", default=None, help="SmartApp endpoints discovery URL.")
@click.option("--scrape.timeout-seconds", "timeout_seconds", type=float, default=None, help="Timeout for each upstream request.")
@click.option("--log.level", "log_level", envvar="LOG_LEVEL", default="INFO", show_default=True)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[str],
    token_file: Optional[str],
    endpoints_url: Optional[str],
    timeout_seconds: Optional[float],
    log_level: str,
) -> None:
    """SmartThings exporter for Prometheus."""
    setup_logging(log_level)
    ctx.obj = {
        "config_file": config_file,
        "token_file": token_file,
        "endpoints_url": endpoints_url,
        "timeout_seconds": timeout_seconds,
    }
    if ctx.invoked_subcommand is None:
        ctx.invoke(start)


@cli.command()
@click.option("--web.listen-address", "listen_address", default=None, help="Address to listen on for telemetry.  [default: :9499]")
@click.option("--web.telemetry-path", "telemetry_path", default=None, help="Path under which to expose metrics.  [default: /metrics]")
@click.pass_obj
def start(obj: Dict[str, Any], listen_address: Optional[str], telemetry_path: Optional[str]) -> None:
    """Start the exporter."""
    cfg = _load_config(obj, listen_address, telemetry_path)
    logging.info("starting smartthings_exporter version=%s python=%s", __version__, sys.version.split()[0])

    client, _ = connect(cfg)
    collector = SmartThingsCollector(
        client.list_devices,
        default_registry(),
        ready_grace_seconds=cfg.ready_grace_seconds,
    )

    host, port = cfg.listen
    serve(host, port, cfg.telemetry_path, collector)


@cli.command()
def metrics() -> None:
    """List every metric the exporter can emit."""
    for spec in default_registry().describe():
        click.echo(f"{spec.fqname}\t{spec.documentation}")


@cli.command()
@click.pass_obj
def devices(obj: Dict[str, Any]) -> None:
    """Fetch devices once and show how each attribute is classified."""
    cfg = _load_config(obj)
    _, found = connect(cfg)
    registry = default_registry()

    for dev in found:
        click.echo(f"{dev.display_name} (id={dev.device_id})")
        for name in sorted(dev.attributes):
            raw = dev.attributes[name]
            outcome = registry.classify(name, raw)
            if isinstance(outcome, Converted):
                detail = f"{outcome.metric.fqname}={outcome.value:g}"
            elif isinstance(outcome, Invalid):
                detail = f"invalid: {outcome.error}"
            elif isinstance(outcome, Dropped):
                detail = "dropped"
            else:
                detail = "unknown"
            click.echo(f"  {name}={raw!r}  {detail}")


def main() -> None:
    cli(prog_name="smartthings_exporter")
