# routes/simulations.py
from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel
from motor.motor_asyncio import AsyncIOMotorClient
import logging
import uuid

import config
from models.question import ROLE_COMPETENCIES
from models.simulation import MODE_MAX_QUESTIONS, ExamConfig, SimulationResult, SubjectProfile
from models.user import UserProfile
from services.exam_runner import ExamRunner, ExamStartError, registry
from services.exam_session import InvalidTransition, SessionState
from services.question_supply import fetch_question_batch
from services.usage import UsageLimitError, check_start_allowed, effective_force_refresh, get_usage
from .auth import get_current_user

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGODB_URI)
db = client[config.DB_NAME]

router = APIRouter(prefix="/api/simulations", tags=["simulations"])

# Hidden until the question has been answered in practice mode
ANSWER_FIELDS = {"correctOptionId", "normative", "difficulty_analysis", "bloomLevel"}


class SelectOption(BaseModel):
    optionId: str


async def save_simulation(user_id: str, result: SimulationResult):
    doc = result.model_dump(mode="json")
    doc["date"] = result.date
    doc["id"] = str(uuid.uuid4())
    doc["user_id"] = user_id
    try:
        await db.simulations.insert_one(doc)
        logger.info(f"Simulation {doc['id']} saved for user {user_id}: score {result.score}")
    except Exception as e:
        logger.error(f"Failed to save simulation for user {user_id}: {str(e)}")
        raise


def session_view(runner: ExamRunner) -> dict:
    session = runner.session
    view = {
        "state": session.state.value,
        "mode": runner.exam_config.mode.value,
        "index": session.index,
        "targetCount": runner.target,
        "loadedCount": len(runner.pool),
        "isLoading": runner.is_loading,
        "remainingSeconds": session.remaining_seconds,
        "selectedOptionId": session.selected_option_id,
        "answeredCount": len(session.answers),
        "affordances": session.affordances(),
    }
    if session.finished:
        view["result"] = runner.result.model_dump(mode="json") if runner.result else None
        return view

    view["question"] = session.current_question.model_dump(exclude=ANSWER_FIELDS)
    if session.state == SessionState.FEEDBACK:
        question = session.current_question
        view["feedback"] = {
            "isCorrect": session.last_answer.isCorrect,
            "selectedOptionId": session.last_answer.selectedOptionId,
            "correctOptionId": question.correctOptionId,
            "normative": question.normative.model_dump(),
            "difficulty_analysis": question.difficulty_analysis,
        }
    return view


def get_active_runner(user_id: str) -> ExamRunner:
    runner = registry.get(user_id)
    if runner is None or runner.session is None:
        raise HTTPException(status_code=404, detail="No active simulation")
    return runner


async def apply_action(current_user: dict, action: str, option_id: str = None) -> dict:
    runner = get_active_runner(current_user["id"])
    try:
        runner.session.dispatch(action, option_id=option_id)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    if runner.session.finished:
        await runner.wait_persisted()
    return session_view(runner)


@router.get("/options")
async def get_simulation_options(current_user: dict = Depends(get_current_user)):
    profile = UserProfile(**current_user)
    competencies = ROLE_COMPETENCIES.get(profile.role, []) if profile.role else []
    return {
        "modes": [{"mode": mode.value, "maxQuestions": cap} for mode, cap in MODE_MAX_QUESTIONS.items()],
        "competencies": [c.value for c in competencies],
        "canForceRefresh": profile.is_premium,
    }


@router.post("/")
async def start_simulation(exam_config: ExamConfig, current_user: dict = Depends(get_current_user)):
    profile = UserProfile(**current_user)
    if not profile.onboarded:
        raise HTTPException(status_code=400, detail="Completa tu perfil (cargo y área) antes de iniciar un simulacro")
    competency = exam_config.selectedCompetency
    if competency and competency not in ROLE_COMPETENCIES[profile.role]:
        raise HTTPException(status_code=400, detail=f"{competency.value} no aplica para el cargo {profile.role.value}")

    usage = await get_usage(db.simulations, profile)
    try:
        check_start_allowed(profile, usage, exam_config)
    except UsageLimitError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    subject = SubjectProfile(
        role=profile.role.value,
        area=profile.area.value,
        competency=exam_config.selectedCompetency.value if exam_config.selectedCompetency else None,
        force_refresh=effective_force_refresh(profile, exam_config),
    )
    runner = ExamRunner(profile.id, exam_config, subject, supply=fetch_question_batch, sink=save_simulation)
    try:
        await registry.start(runner)
    except ExamStartError as e:
        logger.error(f"Could not start simulation for {profile.id}: {str(e)}")
        raise HTTPException(
            status_code=502,
            detail="Ocurrió un error conectando con la IA. Revisa la configuración e intenta de nuevo."
        )
    return session_view(runner)


@router.get("/current")
async def get_current_simulation(current_user: dict = Depends(get_current_user)):
    return session_view(get_active_runner(current_user["id"]))


@router.post("/current/select")
async def select_option(request: SelectOption, current_user: dict = Depends(get_current_user)):
    return await apply_action(current_user, "select", request.optionId)


@router.post("/current/commit")
async def commit_answer(current_user: dict = Depends(get_current_user)):
    return await apply_action(current_user, "commit")


@router.post("/current/next")
async def next_question(current_user: dict = Depends(get_current_user)):
    return await apply_action(current_user, "next")


@router.post("/current/finish")
async def finish_simulation(current_user: dict = Depends(get_current_user)):
    return await apply_action(current_user, "finish")


@router.delete("/current")
async def abandon_simulation(current_user: dict = Depends(get_current_user)):
    if not registry.abandon(current_user["id"]):
        raise HTTPException(status_code=404, detail="No active simulation")
    return {"message": "Simulation abandoned"}


@router.get("/result")
async def get_last_result(current_user: dict = Depends(get_current_user)):
    runner = registry.get(current_user["id"])
    if runner is not None and runner.result is not None:
        return runner.result.model_dump(mode="json")

    latest = await db.simulations.find({"user_id": current_user["id"]}).sort("date", -1).limit(1).to_list(1)
    if not latest:
        raise HTTPException(status_code=404, detail="No simulations yet")
    return {k: v for k, v in latest[0].items() if k != "_id"}


@router.get("/history")
async def get_history(limit: int = Query(50, ge=1, le=200), current_user: dict = Depends(get_current_user)):
    docs = await db.simulations.find({"user_id": current_user["id"]}).sort("date", -1).limit(limit).to_list(None)
    return [{k: v for k, v in doc.items() if k != "_id"} for doc in docs]
