"""Run controller: drives the executor over an endpoint's test cases.

A run is a single-threaded loop with exactly one probe in flight. The loop
suspends at two points: the pause check before each test case and the
fixed delay after it. ``pause``, ``resume`` and ``stop`` only flip the
phase; they may be called from any thread and take effect at the next
suspension point. An in-flight probe always completes.
"""

import logging
import threading
import time
from collections.abc import Callable

from pydantic import BaseModel

from api_validator.errors import RunInProgressError
from api_validator.executor import Executor
from api_validator.generator.base import RunStats, TestResult, summarize
from api_validator.generator.testcase import RuleSelection, TestCaseBuilder
from api_validator.parser.base import ApiEndpoint
from api_validator.runner.state import ACTIVE_PHASES, Phase, RunState
from api_validator.storage import HistoryEntry, JsonStore

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.1

ResultCallback = Callable[[TestResult, RunState], None]


class RunSummary(BaseModel):
    endpoint_id: str
    phase: Phase
    results: list[TestResult]
    stats: RunStats


class RunController:
    """Owns the RunState of one run at a time."""

    def __init__(
        self,
        executor: Executor | None = None,
        store: JsonStore | None = None,
        builder: TestCaseBuilder | None = None,
        delay: float = DEFAULT_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        on_result: ResultCallback | None = None,
    ):
        self.executor = executor or Executor()
        self.store = store
        self.builder = builder or TestCaseBuilder()
        self.delay = delay
        self.sleep = sleep
        self.on_result = on_result

        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._state = RunState()
        self._results: list[TestResult] = []

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def results(self) -> list[TestResult]:
        with self._lock:
            return list(self._results)

    # -- control --------------------------------------------------------------

    def pause(self) -> bool:
        return self._transition((Phase.RUNNING,), Phase.PAUSED)

    def resume(self) -> bool:
        return self._transition((Phase.PAUSED,), Phase.RUNNING)

    def stop(self) -> bool:
        return self._transition(ACTIVE_PHASES, Phase.STOPPED)

    def _transition(self, sources: tuple[Phase, ...], target: Phase) -> bool:
        with self._changed:
            if self._state.phase not in sources:
                logger.debug("Ignoring %s request in phase %s", target.value, self._state.phase.value)
                return False
            self._state = self._state.model_copy(update={"phase": target})
            self._changed.notify_all()
        logger.info("Run %s", target.value)
        return True

    # -- run loop -------------------------------------------------------------

    def start(
        self,
        endpoint: ApiEndpoint,
        selection: RuleSelection,
        base_url: str,
        project_id: str | None = None,
    ) -> RunSummary:
        """Run every test case of ``endpoint`` in build order and return the outcome."""
        with self._lock:
            if self._state.is_active:
                raise RunInProgressError(f"A run is already {self._state.phase.value}")
            self._state = RunState(phase=Phase.RUNNING)
            self._results = []

        try:
            self._run_cases(endpoint, selection, base_url)
        except Exception:
            with self._lock:
                self._state = self._state.model_copy(update={"phase": Phase.STOPPED, "current_test": None})
            raise

        with self._lock:
            phase = Phase.STOPPED if self._state.phase is Phase.STOPPED else Phase.COMPLETED
            self._state = self._state.model_copy(update={"phase": phase, "current_test": None})
            results = list(self._results)

        summary = RunSummary(endpoint_id=endpoint.id, phase=phase, results=results, stats=summarize(results))
        logger.info(
            "Run %s: %d passed, %d failed, %d inconclusive",
            phase.value,
            summary.stats.passed,
            summary.stats.failed,
            summary.stats.inconclusive,
        )
        if self.store:
            self._persist(endpoint, summary, project_id)
        return summary

    def _run_cases(self, endpoint: ApiEndpoint, selection: RuleSelection, base_url: str) -> None:
        false_positives = self.store.load_false_positives().get(endpoint.id, []) if self.store else []
        cases = self.builder.build(endpoint, selection, false_positives)
        with self._lock:
            self._state = self._state.model_copy(update={"total": len(cases)})
        logger.info("Running %d test cases against %s %s", len(cases), endpoint.method, endpoint.path)

        for case in cases:
            if not self._wait_while_paused():
                break
            with self._lock:
                self._state = self._state.model_copy(update={"current_test": case})

            result = self.executor.execute(case, endpoint, base_url)

            with self._lock:
                self._results.append(result)
                self._state = self._state.model_copy(update={"completed": self._state.completed + 1})
                snapshot = self._state
            if self.on_result:
                self.on_result(result, snapshot)

            self.sleep(self.delay)

    def _wait_while_paused(self) -> bool:
        """Block while paused; return False once the run is stopped."""
        with self._changed:
            while self._state.phase is Phase.PAUSED:
                self._changed.wait()
            return self._state.phase is Phase.RUNNING

    def _persist(self, endpoint: ApiEndpoint, summary: RunSummary, project_id: str | None) -> None:
        self.store.save_test_results(endpoint.id, summary.results)
        self.store.save_history_entry(
            HistoryEntry(
                endpoint_id=endpoint.id,
                method=endpoint.method,
                path=endpoint.path,
                phase=summary.phase.value,
                stats=summary.stats,
            )
        )
        if project_id:
            self.store.mark_tested(project_id)
