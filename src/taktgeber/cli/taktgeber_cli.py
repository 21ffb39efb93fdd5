#!/usr/bin/env python3
"""
Taktgeber CLI
Replay event-loop scenarios and inspect the scheduler configuration.
"""

import json
import logging
import sys
from typing import Optional

import click
import yaml

from taktgeber import __version__
from taktgeber.core.config import SchedulerConfig, load_config, setup_logging
from taktgeber.core.errors import TaktgeberError
from taktgeber.core.scenario_loader import load_scenario_from_file, run_scenario

logger = logging.getLogger(__name__)


def _load_config_or_exit(config_path: Optional[str]) -> SchedulerConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, TaktgeberError) as e:
        click.echo(f"❌ Config error: {e}")
        sys.exit(1)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--config', 'config_path', type=click.Path(), default=None,
              help='YAML config file (default: ~/.taktgeber/config.yaml)')
@click.version_option(version=__version__, prog_name='Taktgeber')
@click.pass_context
def cli(ctx, verbose: bool, debug: bool, config_path: Optional[str]):
    """
    Taktgeber - deterministic microtask/macrotask scheduler

    Replay event-loop ordering scenarios written in YAML or JSON.
    """
    config = _load_config_or_exit(config_path)
    if debug:
        config.log_level = 'DEBUG'
    elif verbose:
        config.log_level = 'INFO'
    setup_logging(config)
    ctx.obj = config


@cli.command()
@click.argument('scenario_file', type=click.Path(exists=True))
@click.option('--expect', '-e', default=None,
              help='Comma-separated expected log, overrides the file')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
def run(scenario_file: str, expect: Optional[str], as_json: bool):
    """Run a scenario and print the execution order"""
    try:
        scenario = load_scenario_from_file(scenario_file)
    except TaktgeberError as e:
        click.echo(f"❌ Invalid scenario: {e}")
        sys.exit(1)

    if expect is not None:
        scenario.expect = [item.strip() for item in expect.split(',')]

    result = run_scenario(scenario)

    if as_json:
        payload = result.model_dump()
        payload['matched'] = result.matched
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo(f"📄 Scenario: {result.name}")
        for index, entry in enumerate(result.log, 1):
            click.echo(f"   {index:>3}. {entry}")
        for error in result.errors:
            click.echo(f"   ⚠️  {error}")
        if result.matched is True:
            click.echo("✅ Execution order matches expectation")
        elif result.matched is False:
            click.echo("❌ Execution order differs from expectation")
            click.echo(f"   Expected: {', '.join(result.expected)}")

    if result.matched is False:
        sys.exit(1)


@cli.command()
@click.argument('scenario_file', type=click.Path(exists=True))
def validate(scenario_file: str):
    """Validate a scenario file without running it"""
    try:
        scenario = load_scenario_from_file(scenario_file)
    except TaktgeberError as e:
        click.echo(f"❌ Invalid scenario: {e}")
        sys.exit(1)
    click.echo(f"✅ Scenario '{scenario.name}' is valid ({len(scenario.steps)} top-level steps)")


@cli.command()
@click.pass_obj
def config(config: SchedulerConfig):
    """Show the effective configuration"""
    try:
        config.validate()
    except ValueError as e:
        click.echo(f"❌ Invalid configuration: {e}")
        sys.exit(1)
    click.echo(yaml.safe_dump(config.to_dict(), sort_keys=True).rstrip())


def main():
    """Main CLI entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\n⚠️  Interrupted by user")
        sys.exit(130)
    except Exception as e:
        click.echo(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
