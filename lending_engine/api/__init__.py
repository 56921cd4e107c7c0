"""
Lending Engine API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .tenants import router as tenants_router
from .loans import router as loans_router
from .automation import router as automation_router
from .collections import router as collections_router
from ..exceptions import (
    CollectionCaseNotFoundError, LendingError, LoanNotFoundError, TenantNotFoundError
)
from .. import __version__


NOT_FOUND_ERRORS = (LoanNotFoundError, CollectionCaseNotFoundError, TenantNotFoundError)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Lending Engine API",
        description="Multi-tenant loan ledger with lifecycle automation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    @app.exception_handler(LendingError)
    async def lending_error_handler(request: Request, exc: LendingError):
        status_code = 404 if isinstance(exc, NOT_FOUND_ERRORS) else 400
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    
    # Include routers
    app.include_router(tenants_router, prefix="/tenants", tags=["Tenants"])
    app.include_router(loans_router, prefix="/tenants/{tenant_id}/loans", tags=["Loans"])
    app.include_router(automation_router, prefix="/tenants/{tenant_id}/automation", tags=["Automation"])
    app.include_router(collections_router, prefix="/tenants/{tenant_id}/collections", tags=["Collections"])
    
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "lending_engine_api",
            "version": __version__
        }
    
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Lending Engine API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "tenants": "/tenants",
                "loans": "/tenants/{tenant_id}/loans",
                "automation": "/tenants/{tenant_id}/automation",
                "collections": "/tenants/{tenant_id}/collections"
            }
        }
    
    return app


app = create_app()
