"""Entry point for the ConfigMirror controller."""

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from controller.config import HEALTH_PROBE_HOST, HEALTH_PROBE_PORT
from controller.exceptions import ConfigMirrorException
from controller.manager import ControllerManager
from controller.schemas.common import ErrorResponse, HealthResponse, ReadinessResponse

logger = setup_logging('controller')

app = FastAPI(
    title="ConfigMirror Controller",
    description="Replicates labelled ConfigMaps from a source namespace into target namespaces",
    version="1.0.0"
)

manager = ControllerManager()


@app.on_event("startup")
async def startup_event():
    """
    Load configuration, migrate the database and start watching the cluster.

    Any configuration or migration error propagates and aborts startup.
    """
    logger.info("ConfigMirror controller starting up...")

    manager.initialize()
    await manager.start()

    logger.info("ConfigMirror controller started")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Stop watchers and workers and release connections.
    """
    logger.info("ConfigMirror controller shutting down...")
    await manager.stop()


@app.exception_handler(ConfigMirrorException)
async def configmirror_exception_handler(request: Request, exc: ConfigMirrorException):
    logger.error(f"Controller exception: {exc} path={request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(detail=str(exc), code="INTERNAL_ERROR").model_dump()
    )


@app.get("/healthz", response_model=HealthResponse)
async def health_check():
    """
    Liveness probe. Returns 200 while the process is serving.
    """
    return {"status": "healthy", "service": "configmirror-controller"}


@app.get("/readyz")
async def ready_check():
    """
    Readiness probe.
    Verifies the work queue, both watch streams and, when enabled, the database.
    """
    checks = manager.readiness()
    ready = all(value == "ok" for value in checks.values())
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content=ReadinessResponse(ready=ready, checks=checks).model_dump()
    )


def main() -> None:
    """
    Start the controller and its probe server with uvicorn.
    """
    uvicorn.run(
        "controller.main:app",
        host=HEALTH_PROBE_HOST,
        port=HEALTH_PROBE_PORT
    )


if __name__ == "__main__":
    main()
