from fastapi import FastAPI

from cdevents_adapter.api.validation_routes import router as validation_router
from cdevents_adapter.api.webhook_routes import router as adapter_router
from cdevents_adapter.core.config import settings
from cdevents_adapter.core.logging_conf import configure_logging
from cdevents_adapter.schemas.cdevents import CDEVENTS_SPEC_VERSION, format_timestamp
from cdevents_adapter.services.adapter_factory import AdapterFactory

configure_logging(settings.LOG_LEVEL)
AdapterFactory.initialize()

app = FastAPI(title=settings.PROJECT_NAME, version=settings.APP_VERSION)

app.include_router(validation_router)
app.include_router(adapter_router)


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": format_timestamp(),
        "service": "cd-events-adapter",
        "version": settings.APP_VERSION,
    }


@app.get("/")
async def index():
    adapters = AdapterFactory.list_adapters()
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.APP_VERSION,
        "description": "Transforms provider webhooks into CD Events",
        "documentation": {"openapi": "/openapi.json", "swagger": "/docs"},
        "endpoints": {
            "health": "/health",
            "adapters": {info.name: info.endpoints["info"] for info in adapters},
            "validation": {
                "pipelineRun": {
                    "queued": "/validate/pipelinerun/queued",
                    "started": "/validate/pipelinerun/started",
                    "finished": "/validate/pipelinerun/finished",
                },
                "taskRun": {
                    "started": "/validate/taskrun/started",
                    "finished": "/validate/taskrun/finished",
                },
                "generic": "/validate/event",
            },
        },
        "supported_adapters": {
            info.name: {
                "version": info.version,
                "supported_events": info.supported_events,
                "base_path": f"/adapters/{info.name}",
            }
            for info in adapters
        },
        "specification": {"version": CDEVENTS_SPEC_VERSION, "url": "https://cdevents.dev"},
    }
