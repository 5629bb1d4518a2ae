import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from config import settings
from models import engine
from api.chat import router as chat_router
from api.manuals import router as manuals_router
from services.chat_context import RetrievalConfig
from services.llm_client import OpenAIClient

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("manualchat.main")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Manual assistant backend starting... DEBUG=%s", settings.DEBUG)

    # Shared OpenAI client (embeddings, summaries, streamed answers)
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; chat and search will fail")
    llm = OpenAIClient()
    app.state.llm = llm

    # Retrieval thresholds, fixed for the process lifetime
    retrieval_config = RetrievalConfig.from_settings(settings)
    app.state.retrieval_config = retrieval_config
    logger.info(
        "Retrieval: floor=%.2f low_confidence=%.2f limit=%d window=%d budget=%d",
        retrieval_config.vector_similarity_floor,
        retrieval_config.low_confidence_threshold,
        retrieval_config.section_result_limit,
        retrieval_config.conversation_window_size,
        retrieval_config.summarization_token_budget,
    )

    yield

    # Shutdown
    logger.info("Manual assistant backend shutting down...")
    await llm.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Manual Assistant API",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(manuals_router)


@app.get("/health")
async def health():
    db_ok = True
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check: database unreachable: %s", e)
        db_ok = False
    return {"status": "ok" if db_ok else "degraded", "database": db_ok, "version": VERSION}
