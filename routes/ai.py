# routes/ai.py
from datetime import datetime
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, ValidationError
from motor.motor_asyncio import AsyncIOMotorClient
from openai import OpenAIError
from typing import List, Optional
import httpx
import json
import logging
import traceback

import config
from services.ai_client import AIConfigurationError, call_ai_api
from services.scoring import summarize_history
from services.usage import period_starts
from .auth import get_current_user

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGODB_URI)
db = client[config.DB_NAME]

router = APIRouter(prefix="/api/ai", tags=["ai"])

COACH_SYSTEM_PROMPT = """Eres un entrenador experto para el Concurso Docente de la CNSC (Colombia).
Tu objetivo es analizar el desempeño del usuario y generar un plan de mejora estratégico.

Debes retornar un OBJETO JSON PURO (sin markdown) con la estructura exacta:
{
   "strengths": ["string", ...],
   "weaknesses": ["string", ...],
   "recommendations": ["string", ...],
   "legal_focus": ["string", ...],
   "study_plan_summary": "tips clave y cronograma sugerido de 1 semana"
}

Contexto Normativo:
- Docente de Aula: Ley 115/1994 (Art. 104-110), Decreto 1278/2002, DBAs y EBC, Decreto 1290/2009.
- Rector: Ley 115/1994 (Art. 129-132), Ley 715/2001, Decreto 1075/2015, Guía 34 MEN, Decreto 4791/2008.
- Coordinador: Ley 115/1994 (Art. 133), Decreto 1290/2009, Ley 1620/2013, Guía 34 MEN.
- Docente Orientador: Ley 1098/2006, Ley 1620/2013, Decreto 1421/2017, Ley 1616/2013, Resolución 9317/2016.

En legal_focus SIEMPRE incluye artículos específicos según el rol del usuario."""

EXPERT_SYSTEM_PROMPT = """Eres un abogado experto en derecho educativo colombiano para el concurso docente CNSC.

Fuentes: Constitución Política (Art. 44, 67, 68), Ley 115 de 1994, Decreto 1278 de 2002,
Decreto 2277 de 1979, Ley 715 de 2001, Ley 1620 de 2013 y Decreto 1965 de 2013,
Decreto 1421 de 2017, Guía 34 del MEN.

Formato de respuesta:
1. **Respuesta directa**: máximo 2-3 líneas.
2. **Fundamento legal**: [Ley/Decreto X, Artículo Y]
3. **Consideración práctica**: cómo se implementa en la IE, si aplica.

Sé conciso pero riguroso."""


class PerformanceAnalysis(BaseModel):
    strengths: List[str] = []
    weaknesses: List[str] = []
    recommendations: List[str] = []
    legal_focus: List[str] = []
    study_plan_summary: str = ""


class ExpertQuery(BaseModel):
    query: str
    contextLaw: Optional[str] = None


def parse_json_object(raw_content: str) -> dict:
    clean = raw_content.replace("```json", "").replace("```", "").strip()
    start, end = clean.find("{"), clean.rfind("}")
    if start != -1 and end != -1:
        clean = clean[start:end + 1]
    data = json.loads(clean)
    if not isinstance(data, dict):
        raise ValueError("AI response is not a JSON object")
    return data


def build_coach_prompt(current_user: dict, history: list, stats) -> str:
    recent = [
        {
            "score": round(h.get("score", 0)),
            "questions": h.get("totalQuestions", 0),
            "correct": h.get("correctCount", 0),
            "competency": h.get("targetCompetency") or "General",
        }
        for h in history[:5]
    ]
    return f"""
    Perfil:
    - Rol: {current_user.get('role')}
    - Área: {current_user.get('area')}
    - Nivel de Suscripción: {current_user.get('subscription_tier')}

    Estadísticas:
    - Promedio General: {stats.averageScore}%
    - Simulacros Totales: {stats.totalSimulations}
    - Área más débil: {stats.weakestArea or 'No identificada'}

    Historial Reciente: {json.dumps(recent, ensure_ascii=False)}

    Genera un análisis directo. Si el puntaje es bajo (<60%), sé exigente. Si es alto (>80%), enfócate en perfeccionamiento.
    """


def raise_ai_error(e: Exception, where: str):
    if isinstance(e, AIConfigurationError):
        logger.error(f"AI provider not configured: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    if isinstance(e, httpx.HTTPStatusError):
        logger.error(f"AI API HTTP error in {where}: {e.response.status_code} {e.response.text}")
        raise HTTPException(status_code=500, detail=f"Error from AI API: {e.response.status_code}")
    if isinstance(e, httpx.RequestError):
        logger.error(f"AI API request error in {where}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"AI API request error: {str(e)}")
    logger.error(f"Unexpected error in {where}: {str(e)}\nTraceback: {traceback.format_exc()}")
    raise HTTPException(status_code=500, detail=f"Unexpected error: {str(e)}")


@router.post("/analyze-performance")
async def analyze_performance(current_user: dict = Depends(get_current_user)):
    start_of_day, _ = period_starts()
    used_today = await db.user_analysis_logs.count_documents(
        {"user_id": current_user["id"], "created_at": {"$gte": start_of_day}}
    )
    if used_today >= config.ANALYSIS_DAILY_LIMIT:
        raise HTTPException(status_code=429, detail="Daily limit reached")

    history = await db.simulations.find({"user_id": current_user["id"]}).sort("date", -1).to_list(None)
    if not history:
        raise HTTPException(status_code=400, detail="Debes realizar al menos un simulacro para generar un análisis.")

    stats = summarize_history(history)
    try:
        raw_content = await call_ai_api(
            build_coach_prompt(current_user, history, stats),
            system_prompt=COACH_SYSTEM_PROMPT,
            max_tokens=1500
        )
        analysis = PerformanceAnalysis(**parse_json_object(raw_content))
    except (json.JSONDecodeError, ValueError, ValidationError) as e:
        logger.error(f"Could not parse performance analysis: {str(e)}")
        raise HTTPException(status_code=500, detail="AI returned an invalid analysis")
    except (AIConfigurationError, httpx.HTTPError, OpenAIError) as e:
        raise_ai_error(e, "analyze_performance")

    # Only successful analyses count against the daily limit
    await db.user_analysis_logs.insert_one({
        "user_id": current_user["id"],
        "created_at": datetime.now(start_of_day.tzinfo)
    })
    logger.info(f"Saved analysis log for user {current_user['id']}")
    return {**analysis.model_dump(), "stats": stats.model_dump()}


@router.post("/consult-expert")
async def consult_expert(request: ExpertQuery, current_user: dict = Depends(get_current_user)):
    prompt = f"Consulta: {request.query}."
    if request.contextLaw:
        prompt += f" Contexto: {request.contextLaw}"
    logger.info(f"Expert consultation from {current_user['id']}")
    try:
        answer = await call_ai_api(prompt, system_prompt=EXPERT_SYSTEM_PROMPT, max_tokens=1000)
    except (AIConfigurationError, httpx.HTTPError, OpenAIError) as e:
        raise_ai_error(e, "consult_expert")
    return {"text": answer}
