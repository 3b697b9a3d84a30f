"""
Notification Dispatcher - fans supervisor events out to configured sinks.

Sinks:
- TerminalSink: rich console lines
- DesktopSink: notify-send (Linux) or osascript (macOS)
- WebhookSink: JSON POST via httpx

Delivery is fire-and-forget: handle() only schedules work, and a failing
sink is logged without affecting the other sinks or the supervisor.
"""

import asyncio
import logging
import shutil
import sys
from pathlib import Path

import httpx
from rich.console import Console

from wau.config import NotificationConfig
from wau.orchestrator.events import EventType, SupervisorEvent

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 10.0
NOTIFIER_TIMEOUT = 10.0


class NotificationSink:
    """Base sink. Subclasses implement send()."""

    name = "sink"
    event_types: set[EventType] | None = None  # None = every event

    def wants(self, event: SupervisorEvent) -> bool:
        return self.event_types is None or event.type in self.event_types

    async def send(self, event: SupervisorEvent) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


def describe_event(event: SupervisorEvent) -> str:
    """One-line human description of an event."""
    project = Path(event.project_path).name
    data = event.data

    if event.type is EventType.ANALYSIS_STARTED:
        return f"{project}: analyzing..."
    if event.type is EventType.ANALYSIS_COMPLETED:
        missing = data.get("missingTools", [])
        text = f"{project}: health {data.get('healthScore', '?')}/100"
        if missing:
            text += f", missing: {', '.join(missing)}"
        return text
    if event.type is EventType.ANALYSIS_FAILED:
        return f"{project}: analysis failed: {data.get('error', 'unknown error')}"
    if event.type is EventType.ACTION_STARTED:
        return f"{project}: applying {', '.join(data.get('tools', []))}"
    if event.type is EventType.ACTION_COMPLETED:
        status = "succeeded" if data.get("success") else "finished with failures"
        return f"{project}: setup {status} (applied: {', '.join(data.get('applied', [])) or 'none'})"
    if event.type is EventType.STOPPED:
        return f"{project}: supervisor stopped"
    return f"{project}: {event.type.value}"


class TerminalSink(NotificationSink):
    """Prints events to the terminal."""

    name = "terminal"

    _STYLES = {
        EventType.ANALYSIS_STARTED: "dim",
        EventType.ANALYSIS_COMPLETED: "cyan",
        EventType.ANALYSIS_FAILED: "red",
        EventType.ACTION_STARTED: "yellow",
        EventType.ACTION_COMPLETED: "green",
        EventType.STOPPED: "yellow",
    }

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def send(self, event: SupervisorEvent) -> None:
        style = self._STYLES.get(event.type, "white")
        stamp = event.timestamp.strftime("%H:%M:%S")
        self.console.print(f"[dim]{stamp}[/dim] [{style}]{describe_event(event)}[/{style}]")


class DesktopSink(NotificationSink):
    """Desktop notifications through the platform's notifier command."""

    name = "desktop"
    event_types = {EventType.ANALYSIS_FAILED, EventType.ACTION_COMPLETED, EventType.STOPPED}

    def __init__(self, title: str = "WAU"):
        self.title = title
        self._command = self._detect_command()
        if self._command is None:
            logger.debug("No desktop notifier found - desktop notifications disabled")

    def _detect_command(self) -> str | None:
        if sys.platform == "darwin":
            return shutil.which("osascript")
        return shutil.which("notify-send")

    def wants(self, event: SupervisorEvent) -> bool:
        return self._command is not None and super().wants(event)

    async def send(self, event: SupervisorEvent) -> None:
        if self._command is None:
            return
        message = describe_event(event)
        if sys.platform == "darwin":
            escaped = message.replace('"', '\\"')
            args = ["-e", f'display notification "{escaped}" with title "{self.title}"']
        else:
            args = [self.title, message]

        proc = await asyncio.create_subprocess_exec(
            self._command,
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=NOTIFIER_TIMEOUT)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise RuntimeError(f"Desktop notifier timed out after {NOTIFIER_TIMEOUT}s")
        if proc.returncode != 0:
            raise RuntimeError(
                f"Desktop notifier exited with {proc.returncode}: "
                f"{stderr.decode('utf-8', errors='replace')[:200]}"
            )


class WebhookSink(NotificationSink):
    """POSTs every event as JSON to a webhook URL."""

    name = "webhook"

    def __init__(self, url: str, client: httpx.AsyncClient | None = None):
        self.url = url
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT)
        return self._client

    async def send(self, event: SupervisorEvent) -> None:
        response = await self._get_client().post(self.url, json=event.to_dict())
        response.raise_for_status()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class NotificationDispatcher:
    """
    Routes supervisor events to every enabled sink.

    Register handle() as a supervisor listener.
    """

    def __init__(
        self,
        config: NotificationConfig | None = None,
        console: Console | None = None,
        sinks: list[NotificationSink] | None = None,
    ):
        if sinks is not None:
            self.sinks = sinks
        else:
            config = config or NotificationConfig()
            self.sinks = []
            if config.terminal:
                self.sinks.append(TerminalSink(console))
            if config.desktop:
                self.sinks.append(DesktopSink())
            if config.webhook_url:
                self.sinks.append(WebhookSink(config.webhook_url))

        self._tasks: set[asyncio.Task] = set()
        self.failures: dict[str, int] = {sink.name: 0 for sink in self.sinks}

    def handle(self, event: SupervisorEvent) -> None:
        """Schedule delivery of an event to every interested sink."""
        for sink in self.sinks:
            if not sink.wants(event):
                continue
            task = asyncio.get_running_loop().create_task(self._deliver(sink, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, sink: NotificationSink, event: SupervisorEvent) -> None:
        try:
            await sink.send(event)
        except Exception as e:
            self.failures[sink.name] = self.failures.get(sink.name, 0) + 1
            logger.warning(f"{sink.name} notification failed for {event.type.value}: {e}")

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight deliveries, cancelling any that overrun."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(f"Cancelled {len(not_done)} undelivered notification(s)")
            await asyncio.gather(*not_done, return_exceptions=True)

    async def aclose(self, timeout: float = 5.0) -> None:
        """Flush pending deliveries and release sink resources."""
        await self.drain(timeout)
        for sink in self.sinks:
            try:
                await sink.aclose()
            except Exception as e:
                logger.debug(f"Error closing {sink.name} sink: {e}")
