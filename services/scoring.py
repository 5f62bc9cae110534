# services/scoring.py
import logging
from typing import List, Optional

from models.answer import AnswerRecord
from models.question import Question
from models.simulation import CompetencyScore, ExamConfig, HistorySummary, SimulationResult

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def score_percentage(correct: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(correct / total * 100, 2)


def competency_breakdown(answers: List[AnswerRecord], questions: List[Question]) -> List[CompetencyScore]:
    by_id = {q.id: q for q in questions}
    totals = {}
    for answer in answers:
        question = by_id.get(answer.questionId)
        competency = question.competency if question else "General"
        entry = totals.setdefault(competency, [0, 0])
        entry[0] += 1
        if answer.isCorrect:
            entry[1] += 1
    return [
        CompetencyScore(
            competency=competency,
            total=total,
            correct=correct,
            percentage=round(correct / total * 100),
        )
        for competency, (total, correct) in totals.items()
    ]


def build_simulation_result(
    answers: List[AnswerRecord],
    questions: List[Question],
    config: Optional[ExamConfig] = None,
    timed_out: bool = False,
) -> SimulationResult:
    """Score committed answers; the question list is stored as a snapshot next to them."""
    correct_count = sum(1 for a in answers if a.isCorrect)
    result = SimulationResult(
        totalQuestions=len(answers),
        correctCount=correct_count,
        score=score_percentage(correct_count, len(answers)),
        answers=list(answers),
        questions=list(questions),
        competencyBreakdown=competency_breakdown(answers, questions),
        mode=config.mode if config else None,
        targetCompetency=config.selectedCompetency if config else None,
        timedOut=timed_out,
    )
    logger.info(f"Scored simulation: {correct_count}/{len(answers)} ({result.score}%)")
    return result


def summarize_history(history: List[dict]) -> HistorySummary:
    """Aggregate stored simulations: averages overall and per target competency, and the weakest one."""
    if not history:
        return HistorySummary(totalSimulations=0, averageScore=0, bestScore=0, competencyAverages={})

    scores = [float(h.get("score", 0)) for h in history]
    per_competency = {}
    for h in history:
        competency = (h.get("targetCompetency") or "General").strip()
        entry = per_competency.setdefault(competency, [0.0, 0])
        entry[0] += float(h.get("score", 0))
        entry[1] += 1

    averages = {c: round(total / count) for c, (total, count) in per_competency.items()}
    weakest = min(per_competency, key=lambda c: per_competency[c][0] / per_competency[c][1])

    return HistorySummary(
        totalSimulations=len(history),
        averageScore=round(sum(scores) / len(scores)),
        bestScore=round(max(scores)),
        competencyAverages=averages,
        weakestArea=weakest,
    )
