# services/question_supply.py
import httpx
import json
import logging
import random
import uuid
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorClient
from openai import OpenAIError
from pydantic import ValidationError
from typing import List, Optional

import config
from models.question import Question
from services.ai_client import AIConfigurationError, call_ai_api, model_candidates

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGODB_URI)
db = client[config.DB_NAME]


class QuestionSupplyError(Exception):
    """Neither the cache nor the AI produced a single usable question."""


ROLE_LEGAL_CONTEXT = {
    "Rector": """
    MARCO LEGAL ESPECÍFICO:
    - Ley 715 de 2001 (Art. 5, 10: Sistema General de Participaciones).
    - Decreto 1075 de 2015 (Libro 2, Parte 3: Gestión Educativa y Funciones).
    - Ley 115 de 1994 (Art. 129-132: Funciones del Rector y Gobierno Escolar).
    - Guía 34 del MEN (Gestión Directiva y horizonte institucional).
    - Decreto 4791 de 2008 (Fondos de Servicios Educativos - FSE).
    - Ley 80 de 1993 y Ley 1150 de 2007 (Contratación pública aplicada a colegios).
    ÉNFASIS: 60% Gestión Administrativa/Financiera/Legal, 40% Liderazgo Pedagógico.
    """,
    "Coordinador": """
    MARCO LEGAL ESPECÍFICO:
    - Decreto 1290 de 2009 (Sistema de Evaluación Institucional - SIEE).
    - Ley 1620 de 2013 (Art. 19-21: Comité de Convivencia).
    - Ley 115 de 1994 (Art. 133: Coordinadores).
    - Guía 34 del MEN (Plan de Mejoramiento Institucional - PMI).
    - Decreto 1860 de 1994 (Organización de la jornada escolar y PEI).
    ÉNFASIS: 60% Gestión Académica/Convivencia, 40% Pedagógico.
    """,
    "Docente Orientador": """
    MARCO LEGAL ESPECÍFICO:
    - Ley 1098 de 2006 (Código de Infancia y Adolescencia).
    - Ley 1620 de 2013 y Decreto 1965 de 2013 (Rutas de Atención Integral).
    - Decreto 1421 de 2017 (Inclusión y PIAR).
    - Ley 1616 de 2013 (Salud Mental y Entornos Protectores).
    - Resolución 9317 de 2016 (Manual de Funciones - Orientadores).
    ÉNFASIS: Psicosocial, rutas de atención, prevención y promoción.
    """,
    "Docente de Aula": """
    MARCO LEGAL ESPECÍFICO:
    - Ley 115 de 1994 (Art. 104-110: El Educador).
    - Decreto 1278 de 2002 (Estatuto de Profesionalización).
    - Estándares Básicos de Competencias (EBC) y Derechos Básicos de Aprendizaje (DBA).
    - Decreto 1290 de 2009 (Evaluación en el aula).
    - Decreto 1421 de 2017 (Atención educativa a población con discapacidad).
    ÉNFASIS: 70% Pedagógico/Curricular/Didáctico, 30% Normativo.
    """,
}

TRANSVERSAL_LAWS = """
    NORMAS TRANSVERSALES (APLICAN A TODOS):
    - Constitución Política de Colombia (Art. 67 Educación, Art. 29 Debido Proceso, Art. 16 Libre Desarrollo).
    - Código de Integridad del Servicio Público.
"""

# Checked in order; the first key contained in the competency name wins
COMPETENCY_OVERRIDES = [
    ("Cuantitativo", """
    MODO: MATEMÁTICO NO JURÍDICO.
    TEMAS: Regla de tres, porcentajes, análisis de gráficas, lógica proposicional, estadística básica.
    RESTRICCIÓN: NO cites leyes. La 'normativa' debe ser la explicación lógica del procedimiento.
    """),
    ("Psicotécnica", """
    MODO: JUICIO SITUACIONAL (COMPORTAMENTAL).
    INSTRUCCIÓN: Evalúa liderazgo, trabajo en equipo, resolución de conflictos e iniciativa.
    RESTRICCIÓN: No evalúes conocimientos técnicos ni leyes.
    """),
    ("Comportamental", """
    MODO: JUICIO SITUACIONAL.
    INSTRUCCIÓN: Evalúa compromiso social, trabajo en equipo y orientación al logro.
    """),
    ("Lectura", """
    MODO: LECTURA CRÍTICA (NO ES CASO SITUACIONAL).
    El campo "context" DEBE contener un texto de lectura de 100-150 palabras.
    El campo "text" pregunta por inferencia, intención del autor, idea principal o estructura argumentativa.
    El campo "normative" explica la lógica de comprensión lectora aplicada.
    """),
]

DISCIPLINARY_OVERRIDE = """
    MODO: PROFUNDIDAD DISCIPLINAR.
    INSTRUCCIÓN: Enfócate 100% en el saber específico del área: {area}.
    TEMAS: Estándares Básicos de Competencias y DBAs de esa asignatura.
"""

ENGLISH_OVERRIDE = """
    LANGUAGE MODE: FULL ENGLISH (C1-C2 CEFR Level).
    Generate ALL content (text, context, options, normative.explanation) in English.
"""

DEFAULT_MODE = "MODO ESTÁNDAR: Preguntas de juicio situacional con base legal y pedagógica."

OUTPUT_CONTRACT = """
    FORMATO DE SALIDA: un Array JSON puro. Cada elemento:
    {{
      "text": "La pregunta derivada del caso",
      "context": "Estudio de caso de 50-80 palabras",
      "options": [{{"id": "A", "text": "..."}}, {{"id": "B", "text": "..."}}, {{"id": "C", "text": "..."}}, {{"id": "D", "text": "..."}}],
      "correctOptionId": "A | B | C | D (balanceado entre las opciones)",
      "competency": "{competency}",
      "difficulty": "Baja | Media | Alta",
      "bloomLevel": "COMPRENDER | APLICAR | ANALIZAR | EVALUAR",
      "normative": {{"law": "Norma", "article": "Artículo", "explanation": "Justificación"}},
      "difficulty_analysis": "Por qué la pregunta es difícil"
    }}
"""


def competency_mode(competency: Optional[str], area: str) -> str:
    if not competency:
        return DEFAULT_MODE
    for key, override in COMPETENCY_OVERRIDES:
        if key in competency:
            return override
    if "Específico" in competency or (area != "N/A" and "Pedagógica" not in competency):
        if area == "Idioma Extranjero Inglés":
            return ENGLISH_OVERRIDE
        return DISCIPLINARY_OVERRIDE.format(area=area)
    return DEFAULT_MODE


def build_question_prompt(role: str, area: str, competency: Optional[str], count: int) -> str:
    role_context = ROLE_LEGAL_CONTEXT.get(role, ROLE_LEGAL_CONTEXT["Docente de Aula"])
    return f"""
    ROL: Eres un Diseñador de Pruebas de Alto Nivel para la Comisión Nacional del Servicio Civil (CNSC).
    TAREA: Generar una prueba de {count} preguntas para el cargo de: {role} (área: {area}).

    --- CONTEXTO ESPECÍFICO DEL ROL ---
    {role_context}
    {TRANSVERSAL_LAWS}

    --- MODO DE OPERACIÓN: {competency or 'General'} ---
    {competency_mode(competency, area)}

    REGLAS: las 4 opciones deben ser plausibles; los distractores son acciones buenas pero incompletas.
    Prohibidas las preguntas de memoria pura.
    {OUTPUT_CONTRACT.format(competency=competency or 'General')}
    """


def clean_json(text: str) -> str:
    clean = text.strip()
    if clean.lower().startswith("```json"):
        clean = clean[7:]
    elif clean.startswith("```"):
        clean = clean[3:]
    if clean.endswith("```"):
        clean = clean[:-3]
    clean = clean.strip()
    start = clean.find("[")
    end = clean.rfind("]")
    if start != -1 and end != -1:
        clean = clean[start:end + 1]
    return clean


def parse_question_array(raw_content: str) -> list:
    data = json.loads(clean_json(raw_content))
    if not isinstance(data, list):
        raise ValueError("AI response is not a JSON array")
    return [item for item in data if isinstance(item, dict)]


def finalize_questions(raw_items: list, count: int, competency: Optional[str] = None) -> List[Question]:
    """Turn raw dicts into Questions with fresh ids and defaults; invalid items are skipped."""
    questions = []
    for item in raw_items:
        if len(questions) >= count:
            break
        normative = item.get("normative") or {}
        difficulty = item.get("difficulty")
        try:
            question = Question(
                id=f"q-{uuid.uuid4()}",
                text=item["text"],
                context=item.get("context") or "Situación general aplicada al cargo.",
                options=item["options"],
                correctOptionId=item["correctOptionId"],
                competency=item.get("competency") or competency or "General",
                difficulty=difficulty if difficulty in ("Baja", "Media", "Alta") else "Media",
                normative={
                    "law": normative.get("law") or "Marco normativo general",
                    "article": normative.get("article") or "Ver normativa completa",
                    "explanation": normative.get("explanation") or "Aplicación del debido proceso legal.",
                },
                bloomLevel=item.get("bloomLevel") or "APLICAR",
                difficulty_analysis=item.get("difficulty_analysis") or "Pregunta de nivel estándar CNSC.",
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.warning(f"Skipping malformed question: {str(e)}")
            continue
        if question.correctOptionId not in {o.id for o in question.options}:
            logger.warning(f"Skipping question whose answer {question.correctOptionId} is not an option")
            continue
        questions.append(question)
    return questions


def cache_query(role: str, area: str, competency: Optional[str]) -> dict:
    query = {"role": role, "area": area}
    if competency:
        query["competency"] = competency
    return query


async def fetch_from_cache(role: str, area: str, competency: Optional[str], count: int) -> list:
    try:
        rows = await db.questions_bank.find(cache_query(role, area, competency)).to_list(length=count * 2)
    except Exception as e:
        logger.error(f"Cache fetch error: {str(e)}")
        return []
    random.shuffle(rows)
    return [row["content"] for row in rows[:count] if isinstance(row.get("content"), dict)]


async def save_to_cache(role: str, area: str, competency: Optional[str], items: list):
    rows = [
        {
            "role": role,
            "area": area,
            "competency": competency,
            "content": item,
            "createdAt": datetime.utcnow().isoformat()
        }
        for item in items
    ]
    try:
        await db.questions_bank.insert_many(rows)
        logger.info(f"Saved {len(rows)} questions to cache")
    except Exception as e:
        logger.error(f"Cache save error: {str(e)}")


async def generate_with_fallback(prompt: str) -> list:
    for model in model_candidates():
        try:
            raw_content = await call_ai_api(prompt, model=model)
            items = parse_question_array(raw_content)
            logger.info(f"Generated {len(items)} questions with {model}")
            return items
        except AIConfigurationError as e:
            logger.error(f"AI provider not configured: {str(e)}")
            return []
        except (httpx.HTTPError, OpenAIError, json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Generation with {model} failed: {str(e)}")
    logger.error("All models failed to generate questions")
    return []


async def fetch_question_batch(
    role: str,
    area: Optional[str],
    count: int,
    competency: Optional[str] = None,
    force_refresh: bool = False,
) -> List[Question]:
    """
    Question supply: cached questions first (unless force_refresh), the rest generated by the AI.
    May return fewer than `count`. Raises QuestionSupplyError when nothing usable is produced.
    """
    area = area or "N/A"
    logger.info(f"Fetching {count} questions for role={role}, area={area}, competency={competency}")

    cached = []
    if not force_refresh:
        cached = await fetch_from_cache(role, area, competency, count)
        logger.info(f"Found {len(cached)} questions in cache")
        if len(cached) >= count:
            return finalize_questions(cached, count, competency)

    needed = count - len(cached)
    generated = await generate_with_fallback(build_question_prompt(role, area, competency, needed))
    if generated:
        await save_to_cache(role, area, competency, generated)

    questions = finalize_questions(cached + generated, count, competency)
    if not questions:
        raise QuestionSupplyError("No se pudieron generar preguntas y la caché está vacía.")
    return questions
