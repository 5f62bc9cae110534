# services/exam_session.py
import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from models.answer import AnswerRecord
from models.question import Question
from services.progressive_loader import QuestionPool

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    PRESENTING = "presenting"
    FEEDBACK = "feedback"
    AWAITING_MORE = "awaiting_more"
    FINISHED = "finished"


class InvalidTransition(ValueError):
    """An action that the current state does not accept."""


class ExamSession:
    """
    Answer-session state machine over a shared question pool.

    Every event (select, commit, next, tick, finish) goes through `dispatch`, which
    is the single place deciding precedence: an expired clock always wins.
    The session never awaits; the runner drives it from request handlers and
    from the countdown task.
    """

    def __init__(
        self,
        pool: QuestionPool,
        practice: bool = False,
        time_limit_seconds: Optional[int] = None,
        is_loading: Callable[[], bool] = lambda: False,
        on_finish: Optional[Callable[["ExamSession"], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if len(pool) == 0:
            raise ValueError("An exam session needs at least one question")
        if not practice and not time_limit_seconds:
            raise ValueError("Timed sessions need a positive time limit")

        self.pool = pool
        self.practice = practice
        self.remaining_seconds = None if practice else int(time_limit_seconds)
        self._is_loading = is_loading
        self._on_finish = on_finish
        self._clock = clock

        self.state = SessionState.PRESENTING
        self.index = 0
        self.answers: List[AnswerRecord] = []
        self.selected_option_id: Optional[str] = None
        self.timed_out = False
        self._answered_ids = set()
        self._question_started_at = clock()

    # Derived views

    @property
    def current_question(self) -> Question:
        return self.pool[self.index]

    @property
    def finished(self) -> bool:
        return self.state == SessionState.FINISHED

    @property
    def last_answer(self) -> Optional[AnswerRecord]:
        return self.answers[-1] if self.answers else None

    def affordances(self) -> dict:
        state = self.state
        return {
            "canSelect": state == SessionState.PRESENTING,
            "canCommit": state == SessionState.PRESENTING and self.selected_option_id is not None,
            "canAdvance": state in (SessionState.FEEDBACK, SessionState.AWAITING_MORE),
            "waiting": state == SessionState.AWAITING_MORE,
            "showFeedback": state == SessionState.FEEDBACK,
        }

    # Public actions

    def select_option(self, option_id: str):
        self.dispatch("select", option_id=option_id)

    def commit(self):
        self.dispatch("commit")

    def next(self):
        self.dispatch("next")

    def tick(self):
        self.dispatch("tick")

    def finish(self):
        self.dispatch("finish")

    # Transition function

    def dispatch(self, action: str, option_id: Optional[str] = None):
        if self.state == SessionState.FINISHED:
            if action == "tick":
                return
            raise InvalidTransition(f"Cannot {action}: the exam has finished")

        if self.remaining_seconds is not None and self.remaining_seconds <= 0:
            self._finish(timed_out=True)
            return

        if action == "tick":
            self._on_tick()
        elif action == "select":
            self._on_select(option_id)
        elif action == "commit":
            self._on_commit()
        elif action == "next":
            self._on_next()
        elif action == "finish":
            self._finish()
        else:
            raise InvalidTransition(f"Unknown action: {action}")

    def _on_tick(self):
        if self.remaining_seconds is None:
            return
        self.remaining_seconds -= 1
        if self.remaining_seconds <= 0:
            self.remaining_seconds = 0
            logger.info(f"Time is up after {len(self.answers)} answers")
            self._finish(timed_out=True)

    def _on_select(self, option_id: Optional[str]):
        if self.state != SessionState.PRESENTING:
            raise InvalidTransition(f"Cannot select an option while {self.state.value}")
        question = self.current_question
        if option_id not in {o.id for o in question.options}:
            raise InvalidTransition(f"Option {option_id} does not belong to question {question.id}")
        self.selected_option_id = option_id

    def _on_commit(self):
        if self.state != SessionState.PRESENTING:
            raise InvalidTransition(f"Cannot commit while {self.state.value}")
        if self.selected_option_id is None:
            raise InvalidTransition("Select an option before committing")

        question = self.current_question
        if question.id in self._answered_ids:
            raise InvalidTransition(f"Question {question.id} was already answered")

        record = AnswerRecord(
            questionId=question.id,
            selectedOptionId=self.selected_option_id,
            isCorrect=self.selected_option_id == question.correctOptionId,
            timeSpentSeconds=round(self._clock() - self._question_started_at, 3),
        )
        self.answers.append(record)
        self._answered_ids.add(question.id)

        if self.practice:
            self.state = SessionState.FEEDBACK
        else:
            self._attempt_advance()

    def _on_next(self):
        if self.state not in (SessionState.FEEDBACK, SessionState.AWAITING_MORE):
            raise InvalidTransition(f"Cannot advance while {self.state.value}")
        self._attempt_advance()

    def _attempt_advance(self):
        if self.index + 1 < len(self.pool):
            self.index += 1
            self.state = SessionState.PRESENTING
            self.selected_option_id = None
            self._question_started_at = self._clock()
        elif len(self.pool) < self.pool.target and self._is_loading():
            self.state = SessionState.AWAITING_MORE
        else:
            self._finish()

    def _finish(self, timed_out: bool = False):
        self.state = SessionState.FINISHED
        self.timed_out = timed_out
        self.selected_option_id = None
        logger.info(
            f"Exam finished with {len(self.answers)} answers out of {len(self.pool)} questions"
            f"{' (time out)' if timed_out else ''}"
        )
        if self._on_finish is not None:
            self._on_finish(self)
