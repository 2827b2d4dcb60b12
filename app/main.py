"""
PropLedger — FastAPI Entry Point

Real-estate investment accounting backend.
Serves the AI advisor (streamed RAG answers), property embedding refresh
and OCR field extraction.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from loguru import logger

from app.config import get_settings
from app.advisor import AdvisorPipeline
from app.advisor.knowledge import load_knowledge
from app.llm_engine import OpenAIProvider
from app.rag_engine import PropertyRetriever
from app.routers import advisor
from app.routers import ocr
from app.routers import properties
from app.storage import PropertyStore

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup / shutdown lifecycle."""
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set — provider calls will fail.")

    knowledge = load_knowledge(settings.knowledge_path)
    provider = OpenAIProvider.from_settings(settings)
    store = PropertyStore()
    retriever = PropertyRetriever(
        embedder=provider,
        store=store,
        threshold=settings.similarity_threshold,
        limit=settings.match_count,
    )

    app.state.llm = provider
    app.state.store = store
    app.state.advisor = AdvisorPipeline(
        retriever=retriever,
        completion=provider,
        knowledge=knowledge,
    )
    logger.success(f"✅ Advisor ready | {retriever!r} | {provider!r}")

    yield

    await provider.aclose()
    logger.info("🛑 Shutting down PropLedger API")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Backend for a real-estate investment accounting dashboard. "
        "Answers portfolio questions with retrieval-augmented generation over "
        "the user's properties and transactions, streamed as plain text."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── CORS (open for local dev — restrict in production) ────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# ── Routers ───────────────────────────────────────────────────────────────
app.include_router(advisor.router)
app.include_router(properties.router)
app.include_router(ocr.router)


# ── Root health-check ─────────────────────────────────────────────────────
@app.get("/", tags=["Health"])
async def root():
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "healthy"}
