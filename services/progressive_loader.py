# services/progressive_loader.py
import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List

import config
from models.question import Question
from models.simulation import SubjectProfile

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

QuestionSupply = Callable[..., Awaitable[List[Question]]]


class CancelToken:
    """Cooperative cancellation flag, one per exam run."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True


class QuestionPool:
    """
    Ordered, append-only collection of unique questions, capped at `target`.

    Only the loader appends; the session reads by position.
    """

    def __init__(self, target: int, questions: Iterable[Question] = ()):
        if target < 1:
            raise ValueError("target must be at least 1")
        self.target = target
        self._questions: List[Question] = []
        self._ids = set()
        self.extend(questions)

    def extend(self, questions: Iterable[Question]) -> int:
        """Append questions whose id is new, dropping anything past target. Returns how many were added."""
        added = 0
        for question in questions:
            if len(self._questions) >= self.target:
                break
            if question.id in self._ids:
                continue
            self._ids.add(question.id)
            self._questions.append(question)
            added += 1
        return added

    @property
    def is_full(self) -> bool:
        return len(self._questions) >= self.target

    @property
    def ids(self) -> List[str]:
        return [q.id for q in self._questions]

    def snapshot(self) -> List[Question]:
        return list(self._questions)

    def __len__(self):
        return len(self._questions)

    def __getitem__(self, index: int) -> Question:
        return self._questions[index]


class ProgressiveLoader:
    def __init__(
        self,
        supply: QuestionSupply,
        profile: SubjectProfile,
        pool: QuestionPool,
        token: CancelToken,
        chunk_size: int = config.BACKGROUND_CHUNK_SIZE,
        batch_delay: float = config.BACKGROUND_BATCH_DELAY,
        failure_cooldown: float = config.BACKGROUND_FAILURE_COOLDOWN,
        max_failures: int = config.MAX_CONSECUTIVE_FAILURES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.supply = supply
        self.profile = profile
        self.pool = pool
        self.token = token
        self.chunk_size = chunk_size
        self.batch_delay = batch_delay
        self.failure_cooldown = failure_cooldown
        self.max_failures = max_failures
        self._sleep = sleep
        self.is_loading = False
        self.consecutive_failures = 0
        self.fetch_calls = 0
        self.task = None

    @property
    def loaded(self) -> int:
        return len(self.pool)

    def start(self) -> asyncio.Task:
        # Flag goes up before the task first runs so the session never sees a gap
        self.is_loading = True
        self.task = asyncio.create_task(self.run())
        return self.task

    async def _fetch(self, count: int) -> List[Question]:
        self.fetch_calls += 1
        return await self.supply(
            self.profile.role,
            self.profile.area,
            count,
            competency=self.profile.competency,
            force_refresh=self.profile.force_refresh,
        )

    async def run(self):
        """Extend the pool until target, cancellation or the failure budget. Never raises."""
        self.is_loading = True
        try:
            while self.loaded < self.pool.target and not self.token.cancelled:
                to_fetch = min(self.chunk_size, self.pool.target - self.loaded)
                try:
                    batch = await self._fetch(to_fetch)
                except Exception as e:
                    logger.warning(f"Background fetch of {to_fetch} questions failed: {str(e)}")
                    batch = []

                if batch:
                    added = self.pool.extend(batch)
                    self.consecutive_failures = 0
                    logger.info(f"Background loader added {added} questions ({self.loaded}/{self.pool.target})")
                    if self.loaded < self.pool.target:
                        await self._sleep(self.batch_delay)
                    continue

                self.consecutive_failures += 1
                if self.consecutive_failures >= self.max_failures:
                    logger.warning(
                        f"Stopping background loading after {self.consecutive_failures} consecutive failures "
                        f"({self.loaded}/{self.pool.target})"
                    )
                    break
                await self._sleep(self.failure_cooldown)
        finally:
            self.is_loading = False
            if self.token.cancelled:
                logger.info(f"Background loader cancelled at {self.loaded}/{self.pool.target}")
