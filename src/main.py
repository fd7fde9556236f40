import os
import sys
import signal
import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from models import ClusterNotFoundError, HubNotInstalledError, HubRegistryError, SyncInProgressError
from prometheus_exporter import SyncMetricsExporter
from service import ZoneSyncService
from settings import load_sync_config
from zone_store import InMemoryZoneStore

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# Set by the lifespan handler
service = None
exporter = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the sync service from configuration and run it for the app's lifetime."""
    global service, exporter

    logger.info("Starting MCE Zone Sync...")
    try:
        sync_config = load_sync_config()
        logger.info(f"Sync enabled: {sync_config.enabled}, interval: {sync_config.interval_seconds}s, "
                    f"namespace: {sync_config.namespace}")

        store = InMemoryZoneStore()
        exporter = SyncMetricsExporter(store)
        service = ZoneSyncService.from_config(sync_config, store, exporter=exporter)
        await service.start()
    except Exception as e:
        logger.error(f"Failed to initialize zone sync: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down MCE Zone Sync...")
    if service:
        await service.stop()


app = FastAPI(
    title="MCE Zone Sync",
    description="Discovers hub managed clusters and reconciles them into zones",
    version="1.0.0",
    lifespan=lifespan
)


def _not_initialized() -> JSONResponse:
    return JSONResponse({"error": "Service not initialized"}, status_code=503)


def _probe():
    if service is None:
        return Response(content="Not Ready", status_code=503)
    return "OK"


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus scrape endpoint."""
    if exporter is None:
        return Response(content="Exporter not initialized", status_code=500)
    return Response(
        content=exporter.generate_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )


@app.get("/health", response_class=PlainTextResponse)
async def health():
    return _probe()


@app.get("/ready", response_class=PlainTextResponse)
async def ready():
    return _probe()


@app.get("/status")
async def status():
    """Current sync configuration, state and last result."""
    if service is None:
        return _not_initialized()
    return service.get_sync_status()


@app.post("/sync")
async def sync_now():
    """Trigger one out-of-band sync cycle."""
    if service is None:
        return _not_initialized()
    try:
        result = await asyncio.to_thread(service.sync_zones)
    except SyncInProgressError as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    return result.model_dump(mode='json')


@app.get("/clusters")
async def clusters():
    """Clusters currently eligible for zone sync."""
    if service is None:
        return _not_initialized()
    try:
        discovered = await asyncio.to_thread(service.discover_clusters)
    except HubRegistryError as e:
        return JSONResponse({"error": str(e)}, status_code=503)
    return [info.model_dump(mode='json') for info in discovered]


@app.get("/clusters/{name}")
async def cluster(name: str):
    if service is None:
        return _not_initialized()
    try:
        info = await asyncio.to_thread(service.get_cluster_info, name)
    except ClusterNotFoundError as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    except HubNotInstalledError as e:
        return JSONResponse({"error": str(e), "hint": "install the hub cluster manager"}, status_code=503)
    except HubRegistryError as e:
        return JSONResponse({"error": str(e)}, status_code=503)
    return info.model_dump(mode='json')


@app.get("/")
async def root():
    return {
        "service": "MCE Zone Sync",
        "endpoints": {
            "/metrics": "Prometheus metrics",
            "/health": "Liveness probe",
            "/ready": "Readiness probe",
            "/status": "Sync status and last result",
            "/sync": "Trigger a sync (POST)",
            "/clusters": "Discovered clusters",
            "/clusters/{name}": "One managed cluster",
        }
    }


def _uvicorn_log_config() -> dict:
    # Route uvicorn's loggers through the same format as the service
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"level": LOG_LEVEL, "handlers": ["default"]},
    }


def _handle_shutdown_signal(signum, frame):
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main():
    for signum in (signal.SIGTERM, signal.SIGINT):
        signal.signal(signum, _handle_shutdown_signal)

    uvicorn.run(
        app,
        host=os.environ.get('METRICS_HOST', '0.0.0.0'),
        port=int(os.environ.get('METRICS_PORT', '8080')),
        log_config=_uvicorn_log_config()
    )


if __name__ == '__main__':
    main()
