# services/exam_runner.py
import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

import config
from models.simulation import ExamConfig, SimulationResult, SubjectProfile
from services.exam_session import ExamSession
from services.progressive_loader import CancelToken, ProgressiveLoader, QuestionPool, QuestionSupply
from services.scoring import build_simulation_result
from services.usage import time_budget_seconds

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ResultSink = Callable[[str, SimulationResult], Awaitable[None]]


class ExamStartError(Exception):
    """The initial batch could not be fetched or came back empty."""


class ExamRunner:
    """
    One running exam: the session, its question pool, the background loader,
    the countdown and the cancel token they share.
    """

    def __init__(
        self,
        user_id: str,
        exam_config: ExamConfig,
        profile: SubjectProfile,
        supply: QuestionSupply,
        sink: Optional[ResultSink] = None,
        initial_batch_size: int = config.INITIAL_BATCH_SIZE,
        loader_options: Optional[dict] = None,
        tick_interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.user_id = user_id
        self.exam_config = exam_config
        self.profile = profile
        self.supply = supply
        self.sink = sink
        self.initial_batch_size = initial_batch_size
        self.loader_options = loader_options or {}
        self.tick_interval = tick_interval
        self._sleep = sleep
        self._clock = clock

        self.token = CancelToken()
        self.pool: Optional[QuestionPool] = None
        self.session: Optional[ExamSession] = None
        self.loader: Optional[ProgressiveLoader] = None
        self.result: Optional[SimulationResult] = None
        self._countdown_task = None
        self._persist_task = None

    @property
    def target(self) -> int:
        return self.exam_config.questionCount

    @property
    def is_loading(self) -> bool:
        return self.loader is not None and self.loader.is_loading

    async def start(self):
        to_fetch = min(self.initial_batch_size, self.target)
        try:
            initial = await self.supply(
                self.profile.role,
                self.profile.area,
                to_fetch,
                competency=self.profile.competency,
                force_refresh=self.profile.force_refresh,
            )
        except Exception as e:
            logger.error(f"Initial batch failed for user {self.user_id}: {str(e)}")
            raise ExamStartError(f"Initial question batch failed: {str(e)}") from e

        self.pool = QuestionPool(self.target, initial or [])
        if len(self.pool) == 0:
            logger.error(f"Initial batch for user {self.user_id} was empty")
            raise ExamStartError("No questions were generated for the initial batch")

        time_limit = None if self.exam_config.is_practice else time_budget_seconds(self.target)
        self.session = ExamSession(
            self.pool,
            practice=self.exam_config.is_practice,
            time_limit_seconds=time_limit,
            is_loading=lambda: self.is_loading,
            on_finish=self._handle_finish,
            clock=self._clock,
        )

        if not self.pool.is_full:
            self.loader = ProgressiveLoader(
                self.supply, self.profile, self.pool, self.token, **self.loader_options
            )
            self.loader.start()
        if time_limit is not None:
            self._countdown_task = asyncio.create_task(self._countdown())

        logger.info(
            f"Exam started for user {self.user_id}: mode={self.exam_config.mode.value}, "
            f"target={self.target}, initial={len(self.pool)}"
        )

    async def _countdown(self):
        while not self.session.finished:
            await self._sleep(self.tick_interval)
            self.session.tick()

    def _handle_finish(self, session: ExamSession):
        self.token.cancel()
        countdown = self._countdown_task
        if countdown is not None and countdown is not asyncio.current_task() and not countdown.done():
            countdown.cancel()
        self.result = build_simulation_result(
            session.answers, self.pool.snapshot(), self.exam_config, timed_out=session.timed_out
        )
        if self.sink is not None:
            self._persist_task = asyncio.create_task(self.sink(self.user_id, self.result))
            self._persist_task.add_done_callback(self._log_persist_failure)

    def _log_persist_failure(self, task: asyncio.Task):
        if task.cancelled():
            logger.warning(f"Saving the result for user {self.user_id} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to persist result for user {self.user_id}: {str(error)}")

    async def wait_persisted(self):
        if self._persist_task is not None:
            await self._persist_task

    def abandon(self):
        """Stop loading and the countdown without scoring anything."""
        self.token.cancel()
        if self._countdown_task is not None and not self._countdown_task.done():
            self._countdown_task.cancel()
        logger.info(f"Exam abandoned for user {self.user_id}")


class RunnerRegistry:
    """At most one exam per user; starting another cancels the previous one."""

    def __init__(self):
        self._runners: Dict[str, ExamRunner] = {}

    def get(self, user_id: str) -> Optional[ExamRunner]:
        return self._runners.get(user_id)

    async def start(self, runner: ExamRunner) -> ExamRunner:
        previous = self._runners.pop(runner.user_id, None)
        if previous is not None and not (previous.session and previous.session.finished):
            previous.abandon()
        await runner.start()
        self._runners[runner.user_id] = runner
        return runner

    def abandon(self, user_id: str) -> bool:
        runner = self._runners.pop(user_id, None)
        if runner is None:
            return False
        if not (runner.session and runner.session.finished):
            runner.abandon()
        return True


registry = RunnerRegistry()
