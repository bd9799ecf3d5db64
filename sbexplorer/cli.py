"""
SB Explorer Command-Line Interface

Serves the console API and runs console operations from the shell.

Author: Ayodele Oladeji
Date: 2026-10-16
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
import uvicorn
from fastapi import FastAPI, Response

from sbexplorer import __version__
from sbexplorer.core.logging_config import redact, setup_logging
from sbexplorer.servicebus.api import create_router
from sbexplorer.servicebus.config import (
    ExplorerConfig,
    create_default_config_file,
    load_explorer_config,
)
from sbexplorer.servicebus.console import ExplorerConsole
from sbexplorer.servicebus.error_handlers import register_exception_handlers
from sbexplorer.servicebus.exceptions import ExplorerError, NotConnectedError
from sbexplorer.servicebus.middleware import CorrelationMiddleware
from sbexplorer.servicebus.models import (
    BatchOperationResult,
    BrokerCredential,
    EntityRef,
    OperationOutcome,
    SubQueue,
)


CONFIG_ENV = "SBEXPLORER_CONFIG"
CONNECTION_STRING_ENV = "SBEXPLORER_CONNECTION_STRING"

# Exit code when a batch operation did not fully succeed
EXIT_INCOMPLETE = 2


@click.group()
@click.version_option(version=__version__, prog_name="sbexplorer")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar=CONFIG_ENV,
    help="Path to configuration file",
)
@click.pass_context
def cli(ctx, config: Optional[Path]):
    """
    SB Explorer - Service Bus operator console

    Inspect, delete and resubmit messages in queues, topic subscriptions
    and their dead-letter sub-queues.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


def _load_config(ctx, log_stream=None) -> ExplorerConfig:
    """
    Load the configuration and install logging from it.

    Logs go to stderr unless another stream is given, so command output on
    stdout stays parseable.
    """
    config_path = ctx.obj.get("config_path")
    try:
        config = load_explorer_config(str(config_path) if config_path else None)
    except ValueError as e:
        raise click.ClickException(str(e))
    setup_logging(
        config.log_level.upper(),
        config.log_format,
        config.log_file,
        stream=log_stream or sys.stderr,
    )
    return config


def _credential(connection_string: Optional[str]) -> BrokerCredential:
    if not connection_string:
        raise NotConnectedError()
    return BrokerCredential.from_connection_string(connection_string)


def _fail(error: ExplorerError) -> None:
    click.echo(f"[ERROR] {error.error_code}: {redact(error.message)}", err=True)
    sys.exit(1)


def _run(coro):
    """Run a console coroutine, exiting with status 1 on explorer errors."""
    try:
        return asyncio.run(coro)
    except ExplorerError as e:
        _fail(e)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _finish_batch(result: BatchOperationResult) -> None:
    _echo_json(result.to_dict())
    if result.outcome != OperationOutcome.SUCCEEDED:
        sys.exit(EXIT_INCOMPLETE)


connection_string_option = click.option(
    "--connection-string",
    envvar=CONNECTION_STRING_ENV,
    help=f"Service Bus connection string (or {CONNECTION_STRING_ENV})",
)


def _parse_entity(entity: str) -> EntityRef:
    try:
        return EntityRef.parse(entity)
    except ExplorerError as e:
        _fail(e)


def _targets(sequence_numbers: Tuple[int, ...], all_messages: bool, yes: bool, action: str, entity: EntityRef):
    if all_messages and not yes:
        click.confirm(f"{action} ALL messages of {entity.path}?", abort=True)
    return list(sequence_numbers) or None


# ========== Server ==========

@cli.command()
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to",
    show_default=True,
)
@click.option(
    "--port",
    default=7080,
    help="Port to bind to",
    show_default=True,
    type=int,
)
@click.option(
    "--broker",
    type=click.Choice(["azure", "in-memory"], case_sensitive=False),
    help="Broker adapter (overrides configuration)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (overrides configuration)",
)
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload on code changes (development mode)",
)
@click.pass_context
def serve(ctx, host: str, port: int, broker: Optional[str], log_level: Optional[str], reload: bool):
    """
    Start the console API server.

    Examples:
        sbexplorer serve
        sbexplorer serve --port 8080 --broker in-memory
        sbexplorer -c sbexplorer.yaml serve --log-level DEBUG
    """
    if broker:
        os.environ["SBEXPLORER_BROKER_TYPE"] = broker.lower()
    if log_level:
        os.environ["SBEXPLORER_LOG_LEVEL"] = log_level.upper()
    if ctx.obj.get("config_path"):
        os.environ[CONFIG_ENV] = str(ctx.obj["config_path"])

    config = _load_config(ctx, log_stream=sys.stdout)

    click.echo(f"Starting SB Explorer v{__version__}")
    click.echo(f"Host: {host}:{port}")
    click.echo(f"Broker: {config.broker.broker_type.value}")
    click.echo()

    try:
        if reload:
            uvicorn.run(
                "sbexplorer.cli:create_app",
                host=host,
                port=port,
                log_level=config.log_level.lower(),
                reload=True,
                factory=True,
            )
        else:
            uvicorn.run(
                create_app(config),
                host=host,
                port=port,
                log_level=config.log_level.lower(),
            )
    except KeyboardInterrupt:
        click.echo("\nShutting down SB Explorer...")


# ========== Console operations ==========

@cli.command()
@connection_string_option
@click.pass_context
def entities(ctx, connection_string: Optional[str]):
    """List queues and topics with their subscriptions and counters."""
    console = ExplorerConsole(_load_config(ctx))

    async def do_list():
        return await console.list_entities(_credential(connection_string))

    _echo_json(_run(do_list()).to_dict())


@cli.command()
@click.argument("entity")
@connection_string_option
@click.option("--page", default=0, show_default=True, type=click.IntRange(min=0), help="Zero-based page index")
@click.option("--dlq", is_flag=True, help="Peek the dead-letter sub-queue")
@click.pass_context
def peek(ctx, entity: str, connection_string: Optional[str], page: int, dlq: bool):
    """
    Peek a page of messages without removing them.

    ENTITY is a queue name or TOPIC/SUBSCRIPTION.

    Examples:
        sbexplorer peek orders
        sbexplorer peek orders-topic/audit --dlq --page 2
    """
    console = ExplorerConsole(_load_config(ctx))

    async def do_peek():
        return await console.peek_messages(
            _credential(connection_string), EntityRef.parse(entity), SubQueue.from_flag(dlq), page
        )

    _echo_json(_run(do_peek()).to_dict())


@cli.command()
@click.argument("entity")
@connection_string_option
@click.option("--topic", "is_topic", is_flag=True, help="ENTITY is a topic; counters are summed over subscriptions")
@click.pass_context
def details(ctx, entity: str, connection_string: Optional[str], is_topic: bool):
    """Show live counters of a queue, subscription or topic."""
    console = ExplorerConsole(_load_config(ctx))

    async def do_details():
        ref = EntityRef.topic(entity) if is_topic else EntityRef.parse(entity)
        counters = await console.get_entity_details(_credential(connection_string), ref)
        return {"entity": ref.path, **counters.to_dict()}

    _echo_json(_run(do_details()))


@cli.command()
@click.argument("entity")
@connection_string_option
@click.option("--seq", "sequence_numbers", multiple=True, type=int, help="Sequence number to delete (repeatable)")
@click.option("--all", "all_messages", is_flag=True, help="Delete every message")
@click.option("--dlq", is_flag=True, help="Delete from the dead-letter sub-queue")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def delete(
    ctx,
    entity: str,
    connection_string: Optional[str],
    sequence_numbers: Tuple[int, ...],
    all_messages: bool,
    dlq: bool,
    yes: bool
):
    """
    Delete messages by sequence number, or all of them.

    Exits with status 2 when some targets failed or were not found.

    Examples:
        sbexplorer delete orders --seq 12 --seq 15
        sbexplorer delete orders-topic/audit --dlq --all --yes
    """
    console = ExplorerConsole(_load_config(ctx))
    ref = _parse_entity(entity)
    targets = _targets(sequence_numbers, all_messages, yes, "Delete", ref)

    async def do_delete():
        return await console.delete_messages(
            _credential(connection_string), ref, SubQueue.from_flag(dlq), targets, all_messages
        )

    result = _run(do_delete())
    _finish_batch(result)


@cli.command()
@click.argument("entity")
@connection_string_option
@click.option("--seq", "sequence_numbers", multiple=True, type=int, help="Dead-lettered sequence number (repeatable)")
@click.option("--all", "all_messages", is_flag=True, help="Resubmit every dead-lettered message")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def resubmit(
    ctx,
    entity: str,
    connection_string: Optional[str],
    sequence_numbers: Tuple[int, ...],
    all_messages: bool,
    yes: bool
):
    """
    Resubmit dead-lettered messages to their queue or topic.

    Exits with status 2 when some targets failed or were not found.

    Examples:
        sbexplorer resubmit orders --seq 7
        sbexplorer resubmit orders-topic/audit --all
    """
    console = ExplorerConsole(_load_config(ctx))
    ref = _parse_entity(entity)
    targets = _targets(sequence_numbers, all_messages, yes, "Resubmit", ref)

    async def do_resubmit():
        return await console.resubmit_messages(_credential(connection_string), ref, targets, all_messages)

    result = _run(do_resubmit())
    _finish_batch(result)


# ========== Configuration ==========

@cli.command("init-config")
@click.argument("path", default="./sbexplorer.yaml", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init_config(path: Path, force: bool):
    """Write a default configuration file."""
    if path.exists() and not force:
        click.echo(f"[ERROR] {path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)
    written = create_default_config_file(str(path))
    click.echo(f"[OK] Configuration written to {written}")


@cli.command()
def version():
    """Show SB Explorer version."""
    click.echo(f"SB Explorer version {__version__}")


# ========== Application ==========

def create_app(config: Optional[ExplorerConfig] = None, console: Optional[ExplorerConsole] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Explorer configuration (loaded from ``SBEXPLORER_CONFIG`` and
            environment if None)
        console: Console instance to serve (created from config if None)

    Returns:
        Configured FastAPI application
    """
    if console is None:
        console = ExplorerConsole(config or load_explorer_config(os.getenv(CONFIG_ENV)))

    app = FastAPI(
        title="SB Explorer",
        description="Service Bus operator console",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.console = console

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "broker": console.config.broker.broker_type.value,
            "sessions": len(console.sessions),
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=console.metrics.generate_metrics(),
            media_type=console.metrics.get_content_type(),
        )

    app.include_router(create_router(console))
    app.add_middleware(CorrelationMiddleware)
    register_exception_handlers(app)

    return app


def main():
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
