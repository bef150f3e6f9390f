"""
Profile Tree FastAPI Main Application
Entry point for the profile tree HTTP API.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from profile_tree import __version__
from profile_tree.config import config
from profile_tree.routes import profiles
from profile_tree.services import get_tree_store

# Initialize FastAPI app
app = FastAPI(
    title="Profile Tree Service",
    description="Content-addressed identity profile trees on IPFS",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(profiles.router, prefix="/api", tags=["Profiles"])


@app.on_event("shutdown")
async def shutdown_event():
    """Close content store connections on shutdown."""
    await get_tree_store().store.close()


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "Profile Tree Service",
        "version": __version__,
        "store_backend": config.STORE_BACKEND,
        "encryption": config.is_encryption_configured()
    }


if __name__ == "__main__":
    uvicorn.run(
        "profile_tree.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        log_level=config.API_LOG_LEVEL,
        reload=True
    )
