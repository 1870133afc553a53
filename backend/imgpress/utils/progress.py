"""
Synthetic progress reporting for the blocking compression call.

The remote service gives no progress feedback, so while the orchestrator is
waiting the estimator advances a percentage from elapsed wall-clock time.
The value is capped below 100 until the completion signal arrives.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from imgpress.models import (
    ProgressState,
    PHASES,
    PHASE_IDLE,
    PHASE_COMPRESSING,
)


logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressState], None]


class ProgressEstimator:
    """
    Timer-driven progress signal scoped to a single request.

    A background thread samples elapsed time every ``interval`` seconds and
    maps it linearly onto ``[0, cap]`` over ``duration`` seconds. The thread
    is stopped and joined by ``complete``, ``fail`` or ``cancel``.
    """

    def __init__(
        self,
        listener: Optional[ProgressListener] = None,
        duration: float = 3.0,
        cap: float = 95.0,
        interval: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not 0 <= cap < 100:
            raise ValueError('cap must be in [0, 100)')
        if duration <= 0 or interval <= 0:
            raise ValueError('duration and interval must be positive')

        self.listeners: List[ProgressListener] = [listener] if listener else []
        self.duration = duration
        self.cap = cap
        self.interval = interval
        self.clock = clock

        self._state = ProgressState()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at = 0.0

    @property
    def state(self) -> ProgressState:
        with self._lock:
            return self._state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def estimate(self, elapsed: float) -> float:
        """Map elapsed seconds onto a percent in ``[0, cap]``."""
        if elapsed <= 0:
            return 0.0
        return min(elapsed / self.duration * self.cap, self.cap)

    def begin(self, phase: str):
        """Enter ``phase`` with percent reset to 0."""
        if phase not in PHASES:
            raise ValueError(f'Unknown phase: {phase}')
        self._publish(ProgressState(phase=phase, percent=0.0))

    def report(self, percent: float):
        """Advance the current phase; values below the current percent are ignored."""
        with self._lock:
            current = self._state
            percent = min(max(percent, current.percent), 100.0)
            if percent == current.percent:
                return
            self._state = ProgressState(phase=current.phase, percent=percent)
            state = self._state
        self._notify(state)

    def start(self):
        """Enter the compressing phase and start the timer thread."""
        if self.running:
            raise RuntimeError('Progress estimator already running')

        self.begin(PHASE_COMPRESSING)
        self._stop.clear()
        self._started_at = self.clock()
        self._thread = threading.Thread(target=self._run, name='progress-estimator', daemon=True)
        self._thread.start()

    def enter(self, phase: str):
        """Stop the timer and move to ``phase`` at 0."""
        self._halt()
        self.begin(phase)

    def complete(self):
        """Stop the timer and snap to 100."""
        self._halt()
        self._publish(ProgressState(phase=PHASE_IDLE, percent=100.0))

    def fail(self):
        """Stop the timer and reset to idle."""
        self._halt()
        self._publish(ProgressState(phase=PHASE_IDLE, percent=0.0))

    def cancel(self):
        """Stop the timer without a final update."""
        self._halt()
        with self._lock:
            self._state = ProgressState(phase=PHASE_IDLE, percent=0.0)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.complete()
        else:
            self.fail()
        return False

    def _run(self):
        while not self._stop.wait(self.interval):
            percent = self.estimate(self.clock() - self._started_at)
            self.report(percent)
            if percent >= self.cap:
                break

    def _halt(self):
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def _publish(self, state: ProgressState):
        with self._lock:
            self._state = state
        self._notify(state)

    def _notify(self, state: ProgressState):
        for listener in self.listeners:
            try:
                listener(state)
            except Exception as e:
                logger.warning(f'Progress listener failed: {str(e)}')
