"""
Command-line interface for the Ruuvi REST publisher.
Provides publishing and device registry commands using click and rich.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..ble.scanner import ScannerError
from ..devices.registry import DeviceRegistry, DeviceRegistryError
from ..publisher.options import PublishMode
from ..publisher.sink import ConsolePublishSink, RestPublishSink
from ..service.runner import AgentRunner
from ..utils.config import Config, ConfigurationError
from ..utils.logging import setup_logging


EXIT_RUNTIME_ERROR = 1
EXIT_CONFIGURATION_ERROR = 2

console = Console()


def _flag(value: bool) -> Optional[bool]:
    """Only override configuration with flags that were passed."""
    return True if value else None


def _registry(config: Config, devices_file: Optional[Path]) -> DeviceRegistry:
    return DeviceRegistry(devices_file or config.devices_file)


def _run_agent(runner: AgentRunner):
    """Run the agent, mapping failures to exit codes."""
    try:
        stats = asyncio.run(runner.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return
    except (ScannerError, DeviceRegistryError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_RUNTIME_ERROR)

    console.print(
        f"[blue]Stopped: {stats['records_published']} records published, "
        f"{stats['records_dropped']} dropped[/blue]"
    )


@click.group()
@click.version_option(version="1.0.0", prog_name="ruuvi-rest")
@click.option("--env-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Environment file to load (defaults to ./.env)")
@click.pass_context
def cli(ctx, env_file):
    """Ruuvi REST Publisher - forward RuuviTag readings to an HTTP collector."""
    ctx.obj = Config(env_file)


@cli.command("publish-rest")
@click.argument("endpoint_url", required=False)
@click.option("--mode", type=click.Choice([mode.value for mode in PublishMode], case_sensitive=False),
              default=None, help="Flush policy: by batch size or on a fixed interval")
@click.option("--batch-size", type=int, default=None,
              help="Samples per batch in size mode; 0 or less publishes every sample immediately")
@click.option("--max-batch-age", type=int, default=None,
              help="Publish a size-mode batch once its first sample is this many seconds old")
@click.option("--average-interval", type=int, default=None,
              help="Seconds to collect samples before publishing per-device averages (time mode)")
@click.option("--sample-rate", type=int, default=None,
              help="Keep at most one reading per device every this many seconds; 0 or less keeps all")
@click.option("--trust-ssl", is_flag=True, help="Always trust endpoint TLS certificates")
@click.option("--known-devices", is_flag=True, help="Only publish samples from registered devices")
@click.option("--devices-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Known devices file")
@click.option("--timeout", type=float, default=None, help="HTTP request timeout in seconds")
@click.option("--retries", type=int, default=None, help="HTTP retries for failed requests")
@click.pass_obj
def publish_rest(config, endpoint_url, mode, batch_size, max_batch_age, average_interval, sample_rate,
                 trust_ssl, known_devices, devices_file, timeout, retries):
    """Publish RuuviTag samples to ENDPOINT_URL as JSON batches."""
    try:
        config.validate_configuration()
        options = config.rest_agent_options(
            endpoint_url=endpoint_url,
            publish_mode=mode,
            batch_size=batch_size,
            max_batch_age=max_batch_age,
            average_interval=average_interval,
            sample_rate=sample_rate,
            trust_ssl=_flag(trust_ssl),
            known_devices_only=_flag(known_devices),
            request_timeout=timeout,
            retry_attempts=retries,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_CONFIGURATION_ERROR)

    setup_logging(config)

    sink = RestPublishSink(
        options.endpoint_url,
        trust_ssl=options.trust_ssl,
        timeout=options.request_timeout,
        retry_attempts=options.retry_attempts
    )
    _run_agent(AgentRunner(config, options, sink, registry=_registry(config, devices_file)))


@cli.command("publish-console")
@click.option("--mode", type=click.Choice([mode.value for mode in PublishMode], case_sensitive=False),
              default=None, help="Flush policy: by batch size or on a fixed interval")
@click.option("--batch-size", type=int, default=None,
              help="Samples per batch in size mode; 0 or less prints every sample immediately")
@click.option("--average-interval", type=int, default=None,
              help="Seconds to collect samples before printing per-device averages (time mode)")
@click.option("--sample-rate", type=int, default=None,
              help="Keep at most one reading per device every this many seconds; 0 or less keeps all")
@click.option("--known-devices", is_flag=True, help="Only print samples from registered devices")
@click.option("--devices-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Known devices file")
@click.pass_obj
def publish_console(config, mode, batch_size, average_interval, sample_rate, known_devices, devices_file):
    """Print RuuviTag samples as the JSON that would be posted."""
    try:
        config.validate_configuration()
        options = config.agent_options(
            publish_mode=mode,
            batch_size=batch_size,
            average_interval=average_interval,
            sample_rate=sample_rate,
            known_devices_only=_flag(known_devices),
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_CONFIGURATION_ERROR)

    setup_logging(config)

    sink = ConsolePublishSink(console)
    _run_agent(AgentRunner(config, options, sink, registry=_registry(config, devices_file)))


@cli.group()
@click.option("--devices-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Known devices file")
@click.pass_context
def devices(ctx, devices_file):
    """Manage the known devices registry."""
    registry = _registry(ctx.obj, devices_file)
    try:
        registry.load()
    except DeviceRegistryError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_CONFIGURATION_ERROR)
    ctx.obj = registry


@devices.command("list")
@click.pass_obj
def list_devices(registry):
    """List registered devices."""
    registered = registry.list_devices()
    if not registered:
        console.print("[yellow]No devices registered[/yellow]")
        return

    table = Table(title="Known Devices", show_header=True, header_style="bold magenta")
    table.add_column("MAC Address", style="cyan")
    table.add_column("Device ID", style="green")
    table.add_column("Display Name")

    for device in sorted(registered, key=lambda d: d.device_id):
        table.add_row(device.mac_address, escape(device.device_id), escape(device.display_name or ""))

    console.print(table)


@devices.command("add")
@click.argument("mac_address")
@click.option("--id", "device_id", required=True, help="Stable device id sent to the collector")
@click.option("--name", "display_name", default=None, help="Display name")
@click.pass_obj
def add_device(registry, mac_address, device_id, display_name):
    """Register the device with MAC_ADDRESS."""
    try:
        device = registry.add_device(mac_address, device_id, display_name)
    except DeviceRegistryError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_RUNTIME_ERROR)

    console.print(f"[green]Added {device.device_id} ({device.mac_address})[/green]")


@devices.command("remove")
@click.argument("mac_address")
@click.pass_obj
def remove_device(registry, mac_address):
    """Remove the device with MAC_ADDRESS."""
    try:
        removed = registry.remove_device(mac_address)
    except DeviceRegistryError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(EXIT_RUNTIME_ERROR)

    if not removed:
        console.print(f"[yellow]No device registered with MAC {escape(mac_address)}[/yellow]")
        sys.exit(EXIT_RUNTIME_ERROR)

    console.print(f"[green]Removed {escape(mac_address)}[/green]")


if __name__ == "__main__":
    cli()
