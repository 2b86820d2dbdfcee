from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carpool_router.config import Settings
from carpool_router.routes import geocoding, groups, routing
from carpool_router.services.container import ServiceContainer
from carpool_router.utils.logger import logger


def create_app(settings: Optional[Settings] = None, services: Optional[ServiceContainer] = None) -> FastAPI:
    settings = settings or (services.settings if services else Settings.from_env())
    logger.info("🚀 Starting Carpool Route Optimizer Service...")

    if services is None:
        try:
            services = ServiceContainer.from_settings(settings)
            logger.info("✅ Services initialized successfully")
        except Exception as e:
            logger.error(f"❌ Failed to initialize services: {str(e)}")
            raise

    app = FastAPI(
        title="Carpool Route Optimizer Service",
        description="Orders passenger pickups for shared rides, with geocoding and per-group route storage",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(routing.router, prefix="/api/v1")
    app.include_router(geocoding.router, prefix="/api/v1")
    app.include_router(groups.router, prefix="/api/v1")

    @app.on_event("startup")
    async def startup_event():
        logger.info("✅ Carpool Route Optimizer Service started successfully")
        logger.info(f"📍 Service URL: http://{settings.host}:{settings.port}")
        logger.info(f"📚 API Docs: http://{settings.host}:{settings.port}/docs")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("🛑 Carpool Route Optimizer Service shutting down...")

    @app.get("/")
    async def root():
        logger.debug("Root endpoint called")
        return {
            "message": "Carpool Route Optimizer Service is running",
            "status": "healthy",
            "version": "1.0.0"
        }

    @app.get("/health")
    async def health_check():
        logger.debug("Health check endpoint called")
        return {
            "status": "healthy",
            "service": "carpool-route-optimizer",
            "estimator": services.estimator.name,
            "geocoders": [p.name for p in services.geocoder.providers],
            "document_store": settings.document_store,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = Settings.from_env()
    uvicorn.run(create_app(_settings), host=_settings.host, port=_settings.port)
