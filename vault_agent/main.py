"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vault_agent.api.router import router as vault_router
from vault_agent.chat.router import router as chat_router
from vault_agent.config import get_settings
from vault_agent.dependencies import logger

settings = get_settings()

app = FastAPI(title="Obsidian Vault Analysis Agent", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(vault_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    location = settings.obsidian_api_url if settings.vault_backend == "rest" else str(settings.vault_path)
    return {
        "status": "healthy",
        "version": "0.1.0",
        "vault_backend": settings.vault_backend,
        "vault_location": location,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {"name": "Obsidian Vault Analysis Agent", "version": "0.1.0", "docs": "/docs"}


logger.info(
    "app_startup",
    extra={"host": settings.host, "port": settings.port, "vault_backend": settings.vault_backend},
)


def run_server() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(
        "vault_agent.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server()
