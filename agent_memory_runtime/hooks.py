"""
Metric hooks run after a generation.

The runtime does not score anything itself: it hands each configured Metric
the run's input and output in a background task and forwards the result to
registered listeners. A slow or failing metric never delays or fails the run.

Example:
    class Conciseness(Metric):
        async def measure(self, input: str, output: str) -> MetricResult:
            return MetricResult(score=1.0 if len(output) < 200 else 0.0)

    agent = Agent(..., metrics={"conciseness": Conciseness()})
    agent.hooks.add_listener(lambda event, result: print(event.metric_name, result.score))
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class MetricResult:
    score: float
    info: dict = field(default_factory=dict)


class Metric(ABC):
    """A scoring function over one generation."""

    @abstractmethod
    async def measure(self, input: str, output: str) -> MetricResult:
        ...


@dataclass
class GenerationEvent:
    """What a metric was run on."""

    input: str
    output: str
    run_id: str
    metric_name: str
    agent_name: Optional[str] = None


Listener = Callable[[GenerationEvent, MetricResult], Any]


class HookRunner:
    """Schedules metric hooks as background tasks and tracks them."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        """Register a callback (sync or async) receiving each metric result."""
        self._listeners.append(listener)

    def schedule(
        self,
        metrics: dict[str, Metric],
        input: str,
        output: str,
        run_id: str,
        agent_name: Optional[str] = None,
    ) -> list[asyncio.Task]:
        """Start one task per metric and return them without waiting."""
        tasks = []
        for name, metric in metrics.items():
            event = GenerationEvent(
                input=input,
                output=output,
                run_id=run_id,
                metric_name=name,
                agent_name=agent_name,
            )
            task = asyncio.create_task(self._run(metric, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        return tasks

    async def _run(self, metric: Metric, event: GenerationEvent) -> Optional[MetricResult]:
        try:
            result = await metric.measure(event.input, event.output)
            for listener in self._listeners:
                outcome = listener(event, result)
                if inspect.isawaitable(outcome):
                    await outcome
        except Exception:
            logger.exception(f"Metric {event.metric_name} failed (run_id={event.run_id})")
            return None
        return result

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait for every scheduled hook to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
