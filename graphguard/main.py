"""Main entry point for the graphguard application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Coroutine, Dict, Optional

import typer
from typing_extensions import Annotated

from graphguard.core.command_handler import CommandHandler
from graphguard.core.services.directory_service import DirectoryService
from graphguard.core.services.mail_service import MailService
from graphguard.domain.exceptions import GraphAuthError
from graphguard.infrastructure.cache.caching_service import CachingServiceImpl
from graphguard.infrastructure.cli.display import ConsoleDisplay
from graphguard.infrastructure.config.settings import (
    load_configuration, get_config, set_config, get_azure_credentials,
    get_retry_policy, get_rate_limit_policy, get_breaker_policy,
)
from graphguard.infrastructure.graph.graph_client import GraphClient
from graphguard.infrastructure.graph.token_provider import TokenProvider
from graphguard.infrastructure.monitoring.event_dispatcher import EventDispatcher
from graphguard.infrastructure.monitoring.logger_setup import setup_logging
from graphguard.infrastructure.resilience.circuit_breaker import CircuitBreaker
from graphguard.infrastructure.resilience.pipeline import ResiliencePipeline
from graphguard.infrastructure.resilience.rate_limiter import RateLimiter
from graphguard.infrastructure.resilience.retry_handler import RetryHandler

logger = logging.getLogger(__name__)


def build_graph_client() -> GraphClient:
    """Creates the Graph client from configured Azure app credentials.

    Raises:
        GraphAuthError: If tenant id, client id or secret is missing.
    """
    credentials = get_azure_credentials()
    token_provider = TokenProvider(
        tenant_id=credentials['tenant_id'],
        client_id=credentials['client_id'],
        client_secret=credentials['client_secret'],
        authority=str(get_config('graph.authority')),
    )
    return GraphClient(
        token_provider=token_provider,
        base_url=str(get_config('graph.base_url')),
        timeout=float(get_config('graph.timeout_seconds')),
    )


def create_dependencies(require_graph: bool = True) -> Dict[str, Any]:
    """Creates and wires up all dependencies for one command run.

    This acts as the Composition Root.

    Args:
        require_graph: Build the Graph client and services; commands that
            only inspect local state (status, clear-cache) skip this so they
            work without credentials.
    """
    load_configuration()
    log_level_name = str(get_config('logging.level')).upper()
    setup_logging(
        log_level=getattr(logging, log_level_name, logging.INFO),
        log_format=str(get_config('logging.format')),
        log_file=get_config('logging.file'),
    )
    logger.info("Configuration and logging initialized.")

    deps: Dict[str, Any] = {}
    deps['ui'] = ConsoleDisplay()
    deps['dispatcher'] = EventDispatcher()
    deps['cache_service'] = CachingServiceImpl(
        l1_ttl=int(get_config('cache.ttl_seconds')),
        l2_ttl=int(get_config('cache.l2_ttl_seconds')),
        l2_dir=Path(str(get_config('cache.dir'))).expanduser(),
    )

    rate_policy = get_rate_limit_policy()
    deps['rate_limiter'] = RateLimiter(
        max_requests=rate_policy['max_requests'], time_window=rate_policy['time_window']
    )
    deps['retry_handler'] = RetryHandler.from_policy(get_retry_policy(), dispatcher=deps['dispatcher'])
    deps['circuit_breaker'] = CircuitBreaker.from_policy(get_breaker_policy(), dispatcher=deps['dispatcher'])
    deps['pipeline'] = ResiliencePipeline(
        rate_limiter=deps['rate_limiter'],
        retry_handler=deps['retry_handler'],
        circuit_breaker=deps['circuit_breaker'],
        cache_service=deps['cache_service'],
        dispatcher=deps['dispatcher'],
    )

    deps['graph_client'] = build_graph_client() if require_graph else None
    deps['directory_service'] = DirectoryService(deps['graph_client'], deps['pipeline'])
    deps['mail_service'] = MailService(deps['graph_client'], deps['pipeline'])
    deps['command_handler'] = CommandHandler(
        directory_service=deps['directory_service'],
        mail_service=deps['mail_service'],
        pipeline=deps['pipeline'],
        cache_service=deps['cache_service'],
        ui=deps['ui'],
    )
    deps['dispatcher'].subscribe(deps['command_handler'].warn_on_cache_fallback)
    logger.info("All dependencies initialized successfully.")
    return deps


def _dependencies_or_exit(require_graph: bool = True) -> Dict[str, Any]:
    try:
        return create_dependencies(require_graph=require_graph)
    except GraphAuthError as e:
        logger.error(f"Initialization failed: {e}")
        ConsoleDisplay().display_error(f"{e.message}. Set them in the environment or a .env file.")
        raise typer.Exit(code=2)


def run_async(deps: Dict[str, Any], coro: Coroutine[Any, Any, bool]) -> None:
    """Runs a handler coroutine, closes network/disk resources, maps the result to an exit code."""
    async def _run() -> bool:
        try:
            return await coro
        finally:
            if get_config('cli.show_stats', False):
                deps['command_handler'].handle_status(show_counters=True)
            if deps.get('graph_client') is not None:
                await deps['graph_client'].close()

    try:
        ok = asyncio.run(_run())
    finally:
        deps['cache_service'].close()
    if not ok:
        raise typer.Exit(code=1)


# --- Typer App Definition ---
app = typer.Typer(
    name="graphguard",
    help="graphguard: Microsoft Graph from the command line, with rate limiting, retries and a circuit breaker.",
    add_completion=False,
)

TopOption = Annotated[Optional[int], typer.Option("--top", "-n", min=1, help="Maximum number of results.")]


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
    stats: Annotated[bool, typer.Option("--stats", help="Print rate limiter and circuit breaker counters after the command.")] = False,
):
    """Query Microsoft Graph resiliently."""
    load_configuration()
    if verbose:
        set_config('logging.level', 'DEBUG')
    set_config('cli.show_stats', stats)


@app.command()
def users(
    top: TopOption = None,
    filter_expr: Annotated[Optional[str], typer.Option("--filter", "-f", help="OData $filter expression.")] = None,
):
    """List directory users."""
    deps = _dependencies_or_exit()
    handler: CommandHandler = deps['command_handler']
    run_async(deps, handler.handle_users(top=top, filter_expr=filter_expr))


@app.command()
def user(
    user_id: Annotated[str, typer.Argument(help="Object id or user principal name.")],
):
    """Show a single user."""
    deps = _dependencies_or_exit()
    handler: CommandHandler = deps['command_handler']
    run_async(deps, handler.handle_user(user_id))


@app.command()
def groups(top: TopOption = None):
    """List directory groups."""
    deps = _dependencies_or_exit()
    handler: CommandHandler = deps['command_handler']
    run_async(deps, handler.handle_groups(top=top))


@app.command()
def members(
    group_id: Annotated[str, typer.Argument(help="Group object id.")],
    top: TopOption = None,
):
    """List the user members of a group."""
    deps = _dependencies_or_exit()
    handler: CommandHandler = deps['command_handler']
    run_async(deps, handler.handle_members(group_id, top=top))


@app.command()
def messages(
    user_id: Annotated[str, typer.Argument(help="Mailbox owner (object id or UPN).")],
    top: TopOption = 25,
    unread: Annotated[bool, typer.Option("--unread", help="Only unread messages.")] = False,
):
    """List the newest messages of a mailbox."""
    deps = _dependencies_or_exit()
    handler: CommandHandler = deps['command_handler']
    run_async(deps, handler.handle_messages(user_id, top=top, unread_only=unread))


@app.command()
def status():
    """Show the configured rate limit, retry and circuit breaker policy.

    Counters only exist while a command runs; use --stats with a Graph command to see them.
    """
    deps = _dependencies_or_exit(require_graph=False)
    handler: CommandHandler = deps['command_handler']
    try:
        handler.handle_status(show_counters=False)
    finally:
        deps['cache_service'].close()


@app.command(name="clear-cache")
def clear_cache_command(
    level: Annotated[str, typer.Option(help="Level ('l1', 'l2', 'all').")] = 'all'
):
    """Clears the local Graph result cache."""
    deps = _dependencies_or_exit(require_graph=False)
    handler: CommandHandler = deps['command_handler']
    run_async(deps, handler.handle_clear_cache(level))


def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
