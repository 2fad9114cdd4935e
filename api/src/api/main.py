"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.config import settings
from api.deps import engine
from api.routes import admin, lexeme, poems


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release pooled database connections on shutdown."""
    yield
    engine.dispose()


app = FastAPI(
    title="Poesie API",
    description="Poem ingestion, tokenization and word cards",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(poems.router, prefix="/api/poems", tags=["poems"])
app.include_router(lexeme.router, prefix="/api/lexeme", tags=["lexeme"])


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
