# models/answer.py
from pydantic import BaseModel, ConfigDict


class AnswerRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    questionId: str
    selectedOptionId: str = ""  # Empty only when the clock ran out
    isCorrect: bool = False
    timeSpentSeconds: float = 0.0  # Since the question was first shown
