"""
ReelQueue backend service — operator control + monitoring.

create_app() wires the collaborators onto app.state. Tests pass fakes for
the external ones (analyzer, runner, delete service, chunk sink).
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reelqueue import __version__
from reelqueue.deletion.protocol import DeleteProtocol
from reelqueue.deletion.service import LocalDeleteService
from reelqueue.execution.base import ChunkSink, DeleteService, MediaAnalyzer, ProcessRunner
from reelqueue.execution.ffmpeg import FFmpegProcessRunner
from reelqueue.execution.ffprobe import FFprobeAnalyzer
from reelqueue.execution.progress import EventChannel
from reelqueue.jobs.engine import JobOrchestrator
from reelqueue.jobs.registry import JobRegistry
from reelqueue.routes import control
from reelqueue.services.ingestion import IngestionService
from reelqueue.settings import AppSettings
from reelqueue.transfer.chunking import ChunkedTransferManager
from reelqueue.transfer.sink import LocalChunkSink

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8085


def create_app(
    settings: Optional[AppSettings] = None,
    analyzer: Optional[MediaAnalyzer] = None,
    runner: Optional[ProcessRunner] = None,
    channel: Optional[EventChannel] = None,
    delete_service: Optional[DeleteService] = None,
    chunk_sink: Optional[ChunkSink] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Resolved settings (default: from REELQUEUE_* environment)
        analyzer: Media analyzer (default: ffprobe)
        runner: Process runner (default: ffmpeg)
        channel: Event channel the runner publishes on
                 (default: the ffmpeg runner's own channel, or a new one)
        delete_service: Delete service (default: OS trash)
        chunk_sink: Chunk sink (default: imports directory)
        clock: Time source for run timestamps and metrics
    """
    settings = settings or AppSettings.from_env()

    app = FastAPI(title="ReelQueue Backend", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],  # Vite dev server
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if runner is None:
        runner = FFmpegProcessRunner(settings, channel=channel)
    if channel is None:
        channel = getattr(runner, "channel", None) or EventChannel()

    registry = JobRegistry(log_window_size=settings.log_window_size)
    chunk_sink = chunk_sink or LocalChunkSink(settings.imports_dir)
    delete_protocol = DeleteProtocol(delete_service or LocalDeleteService(), registry, clock=clock)

    app.state.settings = settings
    app.state.clock = clock
    app.state.registry = registry
    app.state.channel = channel
    app.state.runner = runner
    app.state.chunk_sink = chunk_sink
    app.state.delete_protocol = delete_protocol
    app.state.pending_deletion = None
    app.state.orchestrator = JobOrchestrator(
        registry,
        runner,
        channel=channel,
        delete_protocol=delete_protocol,
        clock=clock,
    )
    app.state.ingestion = IngestionService(
        registry,
        analyzer or FFprobeAnalyzer(settings),
        transfer_manager=ChunkedTransferManager(
            chunk_sink,
            min_chunk_bytes=settings.min_chunk_bytes,
            max_chunk_bytes=settings.max_chunk_bytes,
            chunk_divisor=settings.chunk_divisor,
        ),
    )

    app.include_router(control.router)

    @app.get("/")
    async def root():
        return {"service": "reelqueue-backend", "status": "running"}

    return app


def run_server(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """
    Run the backend with uvicorn.

    Args:
        host: Interface to bind (loopback by default; the API has no authentication)
        port: Port to listen on
    """
    import uvicorn

    logger.info(f"[LIFECYCLE] Starting ReelQueue backend on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


app = create_app()
