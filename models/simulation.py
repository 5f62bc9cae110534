# models/simulation.py
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from models.answer import AnswerRecord
from models.question import CompetencyType, Question


class SimulationMode(str, Enum):
    DIAGNOSTICO = "Diagnóstico Inicial"
    SIMULACRO_COMPLETO = "Simulacro Completo"
    PRACTICA_COMPONENTE = "Práctica por Componente"


# Upper bound on questions per exam for each mode
MODE_MAX_QUESTIONS = {
    SimulationMode.DIAGNOSTICO: 15,
    SimulationMode.SIMULACRO_COMPLETO: 50,
    SimulationMode.PRACTICA_COMPONENTE: 50,
}


class ExamConfig(BaseModel):
    mode: SimulationMode = SimulationMode.DIAGNOSTICO
    questionCount: int = Field(default=10, ge=1, le=50)
    selectedCompetency: Optional[CompetencyType] = None
    forceRefresh: bool = False  # Premium: skip the question cache

    @property
    def is_practice(self) -> bool:
        return self.mode == SimulationMode.PRACTICA_COMPONENTE


class CompetencyScore(BaseModel):
    competency: str
    total: int
    correct: int
    percentage: int


class SimulationResult(BaseModel):
    totalQuestions: int
    correctCount: int
    score: float  # 0-100
    answers: List[AnswerRecord]
    questions: List[Question]  # Snapshot, questions are generated on the fly
    competencyBreakdown: List[CompetencyScore] = []
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    mode: Optional[SimulationMode] = None
    targetCompetency: Optional[CompetencyType] = None
    timedOut: bool = False


class SubjectProfile(BaseModel):
    """Who the questions are for. Passed unchanged to every supply call."""
    role: str
    area: str = "N/A"
    competency: Optional[str] = None
    force_refresh: bool = False


class HistorySummary(BaseModel):
    totalSimulations: int
    averageScore: int
    bestScore: int
    competencyAverages: Dict[str, int]  # Keyed by target competency, "General" when none
    weakestArea: Optional[str] = None
