# models/question.py
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional


class UserRole(str, Enum):
    DOCENTE_AULA = "Docente de Aula"
    RECTOR = "Rector"
    COORDINADOR = "Coordinador"
    ORIENTADOR = "Docente Orientador"


class KnowledgeArea(str, Enum):
    PREESCOLAR = "Preescolar"
    PRIMARIA = "Primaria"
    MATEMATICAS = "Matemáticas"
    CIENCIAS_NATURALES = "Ciencias Naturales"
    QUIMICA = "Ciencias Naturales - Química"
    FISICA = "Ciencias Naturales - Física"
    CIENCIAS_SOCIALES = "Ciencias Sociales"
    FILOSOFIA = "Filosofía"
    HUMANIDADES = "Humanidades y Lengua Castellana"
    INGLES = "Idioma Extranjero Inglés"
    TECNOLOGIA = "Tecnología e Informática"
    EDUCACION_FISICA = "Educación Física, Recreación y Deportes"
    ETICA = "Educación Ética y Valores Humanos"
    ARTISTICA_ESCENICAS = "Educación Artística - Artes Escénicas"
    ARTISTICA_PLASTICAS = "Educación Artística - Artes Plásticas"
    ARTISTICA_DANZAS = "Educación Artística - Danzas"
    ARTISTICA_MUSICA = "Educación Artística - Música"
    NONE = "N/A"  # Directivos / orientadores


class CompetencyType(str, Enum):
    LECTURA_CRITICA = "Lectura Crítica"
    RAZONAMIENTO_CUANTITATIVO = "Razonamiento Cuantitativo"
    COMPORTAMENTAL = "Competencias Comportamentales"
    PEDAGOGICA = "Competencias Pedagógicas"
    DISCIPLINAR = "Conocimientos Específicos"
    PSICOTECNICA = "Prueba Psicotécnica"
    GESTION_DIRECTIVA = "Gestión Directiva"
    GESTION_ACADEMICA = "Gestión Académica"
    GESTION_ADMINISTRATIVA = "Gestión Administrativa"
    GESTION_FINANCIERA = "Gestión Financiera"
    ORIENTACION_ESCOLAR = "Orientación Escolar"
    CONVIVENCIA_ESCOLAR = "Convivencia Escolar"
    EDUCACION_INCLUSIVA = "Educación Inclusiva"
    INTERVENCION_PSICOSOCIAL = "Intervención Psicosocial"


# Competencies offered to each role when configuring an exam
ROLE_COMPETENCIES = {
    UserRole.DOCENTE_AULA: [
        CompetencyType.LECTURA_CRITICA,
        CompetencyType.RAZONAMIENTO_CUANTITATIVO,
        CompetencyType.PEDAGOGICA,
        CompetencyType.DISCIPLINAR,
        CompetencyType.PSICOTECNICA,
        CompetencyType.COMPORTAMENTAL,
    ],
    UserRole.RECTOR: [
        CompetencyType.LECTURA_CRITICA,
        CompetencyType.RAZONAMIENTO_CUANTITATIVO,
        CompetencyType.GESTION_DIRECTIVA,
        CompetencyType.GESTION_ADMINISTRATIVA,
        CompetencyType.GESTION_FINANCIERA,
        CompetencyType.GESTION_ACADEMICA,
        CompetencyType.COMPORTAMENTAL,
    ],
    UserRole.COORDINADOR: [
        CompetencyType.LECTURA_CRITICA,
        CompetencyType.RAZONAMIENTO_CUANTITATIVO,
        CompetencyType.GESTION_ACADEMICA,
        CompetencyType.CONVIVENCIA_ESCOLAR,
        CompetencyType.EDUCACION_INCLUSIVA,
        CompetencyType.COMPORTAMENTAL,
    ],
    UserRole.ORIENTADOR: [
        CompetencyType.LECTURA_CRITICA,
        CompetencyType.ORIENTACION_ESCOLAR,
        CompetencyType.CONVIVENCIA_ESCOLAR,
        CompetencyType.INTERVENCION_PSICOSOCIAL,
        CompetencyType.EDUCACION_INCLUSIVA,
        CompetencyType.COMPORTAMENTAL,
    ],
}


class NormativeReference(BaseModel):
    law: str = "Marco normativo general"  # e.g. "Ley 115 de 1994"
    article: str = "Ver normativa completa"  # e.g. "Artículo 78"
    explanation: str = "Aplicación del debido proceso legal."


class QuestionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # 'A', 'B', 'C', 'D'
    text: str


class Question(BaseModel):
    """A generated exam question. Immutable once fetched."""
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    context: Optional[str] = None  # Situational case or reading passage
    options: List[QuestionOption] = Field(..., min_length=2)
    correctOptionId: str
    competency: str = "General"
    difficulty: Literal["Baja", "Media", "Alta"] = "Media"
    normative: NormativeReference = NormativeReference()
    bloomLevel: Optional[str] = None
    difficulty_analysis: Optional[str] = None
