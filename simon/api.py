"""
HTTP layer: landing page, Prometheus scrape endpoint and health check.

Request handlers only read the metric store; they never sample the OS.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from pydantic import BaseModel
import uvicorn

from simon.errors import EncodingFailure
from simon.exporter import Exporter
from simon.render import CONTENT_TYPE

logger = logging.getLogger(__name__)

LANDING_PAGE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>System Metrics Exporter</title>
    <style>
        body { font-family: Arial, sans-serif; line-height: 1.6; padding: 20px; }
        h1 { color: #333; }
        a { color: #0066cc; }
    </style>
</head>
<body>
    <h1>Welcome to System Metrics Exporter</h1>
    <p>This service exports various system metrics in Prometheus format.</p>
    <p>You can access the metrics at: <a href="/metrics">/metrics</a></p>
    <h2>Available Metrics:</h2>
    <ul>
        <li>CPU usage per core</li>
        <li>Memory and swap usage</li>
        <li>Process CPU, memory, runtime and disk I/O (aggregated by name)</li>
        <li>Network usage (bytes, packets and errors per interface)</li>
        <li>Disk I/O (read and write bytes per disk)</li>
        <li>Temperatures, where sensors are available</li>
    </ul>
    <p>These metrics can be scraped by Prometheus and visualized using tools like Grafana.</p>
</body>
</html>
"""


class HealthStatus(BaseModel):
    status: str
    scheduler: str
    cycles: int
    failed_cycles: int


def create_app(exporter: Exporter, manage_scheduler: bool = True) -> FastAPI:
    """
    Build the FastAPI app around an exporter.

    With ``manage_scheduler`` the app lifespan starts the collection loop
    once at startup and stops it at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_scheduler:
            exporter.start()
        try:
            yield
        finally:
            if manage_scheduler:
                # Joining the loop thread must not block the event loop
                await asyncio.to_thread(exporter.stop)

    app = FastAPI(
        title="Simon Exporter",
        description="Host metrics in Prometheus format",
        lifespan=lifespan
    )
    app.state.exporter = exporter

    @app.get('/', response_class=HTMLResponse)
    async def home():
        """Static landing page"""
        return HTMLResponse(content=LANDING_PAGE)

    @app.get('/metrics')
    def metrics():
        """Prometheus scrape endpoint"""
        start = time.monotonic()
        try:
            body = exporter.render()
        except EncodingFailure as e:
            logger.error("Error generating metrics: %s", e)
            return PlainTextResponse("Error generating metrics", status_code=500)
        finally:
            logger.debug(
                "Metrics request processed",
                extra={'context': {'duration_ms': round((time.monotonic() - start) * 1000, 2)}}
            )
        return Response(content=body, media_type=CONTENT_TYPE)

    @app.get('/health', response_model=HealthStatus)
    async def health():
        """Health check endpoint"""
        scheduler = exporter.scheduler
        last = scheduler.last_result
        status = 'healthy' if last is None or last.ok else 'degraded'
        return HealthStatus(
            status=status,
            scheduler=scheduler.state.value,
            cycles=scheduler.cycles,
            failed_cycles=scheduler.failed_cycles
        )

    return app


def run_server(exporter: Exporter, host: str = '0.0.0.0', port: int = 9184):
    """Serve the exporter until interrupted"""
    app = create_app(exporter)
    uvicorn.run(app, host=host, port=port, log_config=None)
