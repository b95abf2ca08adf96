"""FastAPI application serving live workflow visualization sessions."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowviz.config import Settings, configure_logging
from flowviz_server.registry import SessionRegistry, TransportFactory
from flowviz_server.session_routes import router as session_router
from flowviz_server.session_routes import ws_router

VERSION = "0.1.0"


def create_app(
    settings: Settings | None = None,
    transport_factory: TransportFactory | None = None,
) -> FastAPI:
    """Build the application; tests pass an in-memory transport factory."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the session registry on startup and close every session on shutdown."""
        app.state.registry = SessionRegistry(settings, transport_factory=transport_factory)
        yield
        await app.state.registry.close_all()

    app = FastAPI(
        title="Flowviz API",
        description="Live visualization of multi-agent pipeline executions",
        version=VERSION,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # include routes
    app.include_router(session_router, prefix="/api")
    app.include_router(ws_router)

    @app.get("/")
    def root():
        """Health check endpoint."""
        return {
            "status": "ok",
            "version": VERSION,
            "event_server": settings.server_url,
            "sessions": len(app.state.registry.request_ids()),
            "endpoints": {
                "sessions": "/api/sessions",
                "stream": "/ws/sessions/{request_id}",
            },
        }

    return app


settings = Settings.from_env()
configure_logging(settings)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
