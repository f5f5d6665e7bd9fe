"""Command line interface for the webhook activity stream."""

import asyncio
import json
import logging
import signal
import sys
from typing import Optional

import click
from pydantic import ValidationError

from webhook_activity.config import StreamSettings, load_settings
from webhook_activity.connection_manager import build_stream_url
from webhook_activity.formatters.base import BaseFormatter
from webhook_activity.formatters.human import HumanFormatter
from webhook_activity.formatters.json import JSONFormatter
from webhook_activity.logging_config import configure_cli_logging, log_environment_info, mask_url_credential
from webhook_activity.models import ActivityEvent, ConnectionStatus, StreamView
from webhook_activity.stream import ActivityStream

logger = logging.getLogger(__name__)


class ActivityWatcher:
    """Prints activity and status changes of a stream as they are published."""

    def __init__(self, stream: ActivityStream, formatter: BaseFormatter):
        """Initialize watcher."""
        self.stream = stream
        self.formatter = formatter
        self.gave_up = False
        self._last_status: Optional[ConnectionStatus] = None
        self._last_event: Optional[ActivityEvent] = None
        self._stop_event = asyncio.Event()

    def on_view(self, view: StreamView) -> None:
        """Publisher listener: emit what changed since the previous view."""
        if view.status != self._last_status:
            self._last_status = view.status
            self.formatter.output(self.formatter.format_status(
                view.status,
                attempt=self.stream.manager.attempt,
                history=len(view.history),
            ))

        # History is newest first; everything before the last printed event is new
        new_events = []
        for event in view.history:
            if event is self._last_event:
                break
            new_events.append(event)
        for event in reversed(new_events):
            self.formatter.output(self.formatter.format_event(event))
        self._last_event = view.latest

    def stop(self) -> None:
        """Ask run() to return."""
        self._stop_event.set()

    async def run(self) -> int:
        """Watch until interrupted or the stream gives up; returns an exit code."""
        settings = self.stream.settings

        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGTERM, self.stop)
            loop.add_signal_handler(signal.SIGINT, self.stop)

        await self.stream.start()
        try:
            credential = self.stream.credentials.current()
            if not credential:
                self.formatter.output(self.formatter.format_error("No API key configured"))
                return 2

            url = build_stream_url(settings.stream_url, credential, settings.credential_param)
            self.formatter.output(self.formatter.format_header(
                mask_url_credential(url, settings.credential_param),
                history_size=settings.history_size,
            ))
            unsubscribe = self.stream.subscribe(self.on_view)

            stop_task = asyncio.create_task(self._stop_event.wait())
            waiters = [stop_task]
            if self.stream.manager.task is not None:
                waiters.append(self.stream.manager.task)

            done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            if not stop_task.done():
                self.gave_up = True
                stop_task.cancel()
                try:
                    await stop_task
                except asyncio.CancelledError:
                    pass

            unsubscribe()
        finally:
            await self.stream.aclose()

        if self.gave_up:
            self.formatter.output(self.formatter.format_error(
                "Gave up after %d reconnection attempts" % settings.max_reconnect_attempts
            ))
            return 1
        return 0


def build_settings(ctx: click.Context, **overrides) -> StreamSettings:
    """Load settings for a command, turning validation errors into usage errors."""
    params = ctx.find_root().params
    try:
        return load_settings(
            env_file=params.get("env_file"),
            config_file=params.get("config_file"),
            **overrides,
        )
    except ValidationError as e:
        raise click.UsageError(f"Invalid configuration: {e}")


@click.group()
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="YAML settings file")
@click.option("--env-file", type=click.Path(dir_okay=False), help="Dotenv file to load")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_file, env_file, verbose):
    """Watch live webhook delivery activity."""
    configure_cli_logging(verbose=verbose)
    if verbose:
        log_environment_info(logger)


@cli.command()
@click.option("--api-key", envvar="WEBHOOK_ACTIVITY_API_KEY", help="API key for the stream")
@click.option("--url", "stream_url", help="Base WebSocket endpoint (e.g. ws://localhost:3000)")
@click.option("--history-size", type=int, help="Number of recent events kept")
@click.option("--max-retries", "max_reconnect_attempts", type=int, help="Reconnect attempts before giving up")
@click.option("--format", "output_format", type=click.Choice(["human", "json"]), default="human",
              show_default=True, help="Output format")
@click.option("--no-header", is_flag=True, help="Suppress the table header (human format)")
@click.pass_context
def watch(ctx, api_key, stream_url, history_size, max_reconnect_attempts, output_format, no_header):
    """Stream webhook activity events to stdout."""
    settings = build_settings(
        ctx,
        api_key=api_key,
        stream_url=stream_url,
        history_size=history_size,
        max_reconnect_attempts=max_reconnect_attempts,
    )

    if output_format == "json":
        formatter: BaseFormatter = JSONFormatter()
    else:
        formatter = HumanFormatter(show_header=not no_header)

    watcher = ActivityWatcher(ActivityStream(settings), formatter)
    try:
        exit_code = asyncio.run(watcher.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 0
    ctx.exit(exit_code)


@cli.command()
@click.option("--api-key", envvar="WEBHOOK_ACTIVITY_API_KEY", help="API key sent as bearer token")
@click.option("--url", "health_url", help="Health endpoint URL")
@click.pass_context
def health(ctx, api_key, health_url):
    """Check the activity server health endpoint."""
    settings = build_settings(ctx, api_key=api_key, health_url=health_url)
    result = asyncio.run(ActivityStream(settings).check_health())
    click.echo(json.dumps(result, indent=2, sort_keys=True))
    if result.get("status") == "unhealthy":
        ctx.exit(1)


def main():
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
