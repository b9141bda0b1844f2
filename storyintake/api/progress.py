"""Throttled progress summaries while a structured generation streams."""
import asyncio
import copy
import time
from typing import Any, Awaitable, Callable, Optional

from rich.console import Console

from ..config import get_settings
from ..prompts import get_prompt_loader
from ..utils.logging import get_logger

PROMPT_NAME = "progress/summary"


class ProgressSummarizer:
    """
    Turn a stream of partial values into occasional short descriptions.

    At most one partial is sampled per ``interval_ms`` of wall time, and only
    while no earlier summary is still running. Summaries run in background
    tasks so the stream being observed is never slowed down. A failing
    summary is logged and dropped; one still running when the stream ends is
    cancelled.
    """

    def __init__(
        self,
        summarize: Callable[[Any], Awaitable[str]],
        on_summary: Callable[[str], None],
        interval_ms: int = 3000,
        clock: Callable[[], float] = time.monotonic
    ):
        self.summarize = summarize
        self.on_summary = on_summary
        self.interval_ms = interval_ms
        self._clock = clock
        self._last_sample: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    def start(self):
        """Reset sampling for a new stream."""
        self._last_sample = None
        self._task = None

    def observe(self, partial: Any) -> bool:
        """
        Offer a partial value; returns True when it was sampled.

        Must be called from a running event loop.
        """
        now = self._clock()
        if self._last_sample is not None and (now - self._last_sample) * 1000 < self.interval_ms:
            return False
        if self._task is not None and not self._task.done():
            return False

        self._last_sample = now
        self._task = asyncio.create_task(self._run(copy.deepcopy(partial)))
        return True

    async def _run(self, partial: Any):
        try:
            summary = await self.summarize(partial)
        except Exception as e:
            get_logger("progress").warning(f"Progress summary failed: {e}")
            return

        if summary and summary.strip():
            self.on_summary(summary.strip())

    async def stop(self):
        """Cancel a summary that is still in flight."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            # Only swallow our own task's cancellation
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise


def create_progress_summarizer(
    client,
    model: Optional[str] = None,
    on_summary: Optional[Callable[[str], None]] = None,
    interval_ms: Optional[int] = None,
    console: Optional[Console] = None
) -> ProgressSummarizer:
    """
    Build a summarizer backed by a cheap free-text model.

    Args:
        client: Client with a ``completion`` coroutine
        model: Summary model (settings ``summary_model`` when None)
        on_summary: Receives each summary (prints dimmed to the console when None)
        interval_ms: Sampling interval (settings ``progress_interval_ms`` when None)
        console: Console for the default printer
    """
    settings = get_settings()
    loader = get_prompt_loader()
    model = model or settings.summary_model
    console = console or Console()

    async def summarize(partial: Any) -> str:
        return await client.completion(model=model, **loader.build_request(PROMPT_NAME, partial=partial))

    def print_summary(text: str):
        console.print(f"[dim]{text}...[/dim]")

    return ProgressSummarizer(
        summarize,
        on_summary or print_summary,
        interval_ms=settings.progress_interval_ms if interval_ms is None else interval_ms
    )
