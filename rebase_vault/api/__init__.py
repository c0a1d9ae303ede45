"""
Rebase Vault API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .. import __version__
from .ledger import router as ledger_router
from .vault import router as vault_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Rebase Vault API",
        description="Interest-bearing ledger token and custodial vault",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(ledger_router, prefix="/ledger", tags=["Ledger"])
    app.include_router(vault_router, prefix="/vault", tags=["Vault"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "rebase_vault_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Rebase Vault API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "ledger": "/ledger",
                "vault": "/vault",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "rebase_vault.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
