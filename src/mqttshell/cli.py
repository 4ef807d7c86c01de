"""CLI entry point for mqtt-shell."""

from __future__ import annotations

import asyncio
import logging

import typer

from mqttshell.config import MqttShellConfig

app = typer.Typer(
    name="mqtt-shell",
    help="Remote shell access tunnelled through an MQTT broker.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(
    config_file: str | None,
    channel: str | None,
    host: str | None,
    port: int | None,
) -> MqttShellConfig:
    config = MqttShellConfig.load(config_file)
    if channel:
        config.channel = channel
    if host:
        config.broker.host = host
    if port:
        config.broker.port = port
    return config


@app.command()
def agent(
    channel: str | None = typer.Option(
        None, "--channel", "-c", help="Topic root (default: shell)."
    ),
    host: str | None = typer.Option(
        None, "--host", help="MQTT broker host (default: 127.0.0.1)."
    ),
    port: int | None = typer.Option(
        None, "--port", help="MQTT broker port (default: 1883)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", help="Config file path (JSON)."
    ),
) -> None:
    """Run the agent: own a shell and serve it over the broker, forever."""
    from mqttshell.agent.orchestrator import AgentOrchestrator
    from mqttshell.pty.session import PTYSpawnError

    setup_logging(verbose)
    config = _load_config(config_file, channel, host, port)

    typer.echo("Starting MQTT Shell Agent with auto-reconnect and shell restart...")
    typer.echo(
        f"Using channel: '{config.channel}' on {config.broker.host}:{config.broker.port}"
    )

    try:
        asyncio.run(AgentOrchestrator(config).run_forever())
    except PTYSpawnError as e:
        logging.getLogger(__name__).critical("%s", e)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        raise typer.Exit(130)


@app.command()
def controller(
    channel: str | None = typer.Option(
        None, "--channel", "-c", help="Topic root (default: shell)."
    ),
    host: str | None = typer.Option(
        None, "--host", help="MQTT broker host (default: 127.0.0.1)."
    ),
    port: int | None = typer.Option(
        None, "--port", help="MQTT broker port (default: 1883)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", help="Config file path (JSON)."
    ),
) -> None:
    """Run the controller: a raw-mode terminal attached to a remote agent."""
    from mqttshell.controller.resize import terminal_size
    from mqttshell.controller.session import ControllerSession, TerminalSetupError

    setup_logging(verbose)
    if not verbose:
        logging.getLogger().setLevel(logging.WARNING)
    config = _load_config(config_file, channel, host, port)

    cols, rows = terminal_size()
    typer.echo("Starting MQTT Shell Controller with TTY support...")
    typer.echo(
        f"Using channel: '{config.channel}' at {config.broker.host}:{config.broker.port}"
    )
    typer.echo(f"Terminal size: {cols}x{rows}")
    typer.echo("Press Ctrl+Q to exit.")

    try:
        asyncio.run(ControllerSession(config).run())
    except TerminalSetupError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("\rController disconnected. Terminal restored.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
