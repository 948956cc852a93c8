"""
Command line entry points.
"""

import sys
import time
from typing import Optional

import click

from simon.config import load_config
from simon.errors import ConfigError, SimonError
from simon.log import get_logger, setup_logging
from simon.sampler import CPU_MODES

logger = get_logger('cli')


def _load(config: Optional[str], **overrides):
    try:
        return load_config(config, overrides=overrides)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


@click.group()
def main():
    """Host metrics exporter for Prometheus"""


@main.command()
@click.option('--config', type=click.Path(exists=True), default=None, help='Path to config.yml')
@click.option('--host', default=None, help='Host to bind to (default: 0.0.0.0)')
@click.option('--port', type=int, default=None, help='Port to bind to (default: 9184)')
@click.option('--interval', type=float, default=None, help='Collection interval in seconds (default: 5)')
@click.option('--cpu-mode', type=click.Choice(CPU_MODES), default=None, help='Per-core CPU metric style')
@click.option('--log-level', default=None, help='Logging level (default: INFO)')
def serve(config, host, port, interval, cpu_mode, log_level):
    """Run the exporter HTTP server with background collection"""
    # Imported here so `collect` does not need the web stack
    from simon.api import run_server
    from simon.exporter import Exporter

    cfg = _load(
        config,
        host=host,
        port=port,
        collection_interval=interval,
        cpu_mode=cpu_mode,
        log_level=log_level
    )
    setup_logging(cfg.level, log_file=cfg.log_file, use_json=cfg.log_json)

    try:
        exporter = Exporter(cfg)
    except SimonError as e:
        click.echo(f"Failed to initialise exporter: {e}", err=True)
        sys.exit(1)

    click.echo(f"Listening on http://{cfg.host}:{cfg.port}")
    logger.info("Starting exporter", extra={'context': cfg.as_dict()})
    run_server(exporter, host=cfg.host, port=cfg.port)


@main.command()
@click.option('--config', type=click.Path(exists=True), default=None, help='Path to config.yml')
@click.option('--cycles', type=click.IntRange(min=1), default=2, help='Collection cycles to run (default: 2)')
@click.option('--interval', type=float, default=None, help='Seconds between cycles (default: 5)')
@click.option('--cpu-mode', type=click.Choice(CPU_MODES), default=None, help='Per-core CPU metric style')
def collect(config, cycles, interval, cpu_mode):
    """Run a few collection cycles and print the metrics"""
    from simon.exporter import Exporter

    cfg = _load(config, collection_interval=interval, cpu_mode=cpu_mode)
    setup_logging(cfg.level, log_file=cfg.log_file, use_json=cfg.log_json)

    exporter = Exporter(cfg)
    for cycle in range(cycles):
        if cycle:
            time.sleep(cfg.collection_interval)
        result = exporter.scheduler.run_once()
        if not result.ok:
            click.echo(f"Collection cycle failed: {result.error}", err=True)

    click.echo(exporter.render().decode('utf-8'), nl=False)
