# main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
import logging

import config
from routes import ai, auth, performance, simulations, users

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGODB_URI)
db = client[config.DB_NAME]


async def init_db():
    await db.users.create_index("id", unique=True)
    await db.users.create_index("email", unique=True)
    await db.simulations.create_index([("user_id", 1), ("date", -1)])
    await db.questions_bank.create_index([("role", 1), ("area", 1), ("competency", 1)])
    await db.user_analysis_logs.create_index([("user_id", 1), ("created_at", -1)])


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("Indexes ready")
    yield


app = FastAPI(title="Concurso Docente API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(simulations.router)
app.include_router(performance.router)
app.include_router(ai.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
