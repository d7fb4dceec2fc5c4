"""
CLI command implementations.

Commands:
- run_recipe: import files, compile a recipe, run it to a terminal outcome

The HTTP surface and the CLI share the same pipeline:
ingestion → recipe compiler → orchestrator (→ trash phase).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..deletion.protocol import DeleteProtocol
from ..execution.base import DeleteService, MediaAnalyzer, ProcessRunner
from ..execution.progress import EventChannel
from ..jobs.engine import ConfirmCallback, JobOrchestrator, RunReport
from ..jobs.models import MediaFile, TaskStatus
from ..jobs.registry import JobRegistry
from ..monitoring.metrics import JobMetrics, compute_metrics
from ..recipes import RecipeError, compile_recipe
from ..services.ingestion import IngestionError, IngestionService
from .errors import ValidationError

logger = logging.getLogger(__name__)


async def run_recipe(
    recipe_id: str,
    paths: Sequence[str],
    params: Dict[str, Any],
    analyzer: MediaAnalyzer,
    runner: ProcessRunner,
    delete_service: DeleteService,
    channel: Optional[EventChannel] = None,
    confirm_delete: Optional[ConfirmCallback] = None,
    registry: Optional[JobRegistry] = None,
) -> Tuple[RunReport, JobRegistry]:
    """
    Import, compile and run one recipe.

    Args:
        recipe_id: Registered recipe id
        paths: Source file paths
        params: Raw recipe parameters
        analyzer: Media analyzer
        runner: Process runner
        delete_service: Delete service for the trash phase
        channel: Event channel the runner publishes on
        confirm_delete: Asked before the trash phase commits
        registry: Registry to use (default: a new one)

    Returns:
        (run report, registry holding the final state)

    Raises:
        ValidationError: If no file is usable or the recipe is invalid
    """
    registry = registry or JobRegistry()
    ingestion = IngestionService(registry, analyzer)

    try:
        imported = await ingestion.import_paths(paths)
    except IngestionError as e:
        raise ValidationError(e.message)

    for media in imported:
        if media.status == TaskStatus.ERROR:
            logger.warning(f"Skipping {media.path}: {media.failure_reason}")

    ready: List[MediaFile] = [m for m in imported if m.status == TaskStatus.WAITING]
    if not ready:
        raise ValidationError("None of the given files could be analyzed")

    try:
        tasks = compile_recipe(recipe_id, ready, params)
    except RecipeError as e:
        raise ValidationError(str(e))

    orchestrator = JobOrchestrator(
        registry,
        runner,
        channel=channel,
        delete_protocol=DeleteProtocol(delete_service, registry),
    )
    report = await orchestrator.run(tasks, confirm_delete=confirm_delete)
    return report, registry


def summarize(registry: JobRegistry, now: Optional[datetime] = None) -> JobMetrics:
    """Final metrics over the run's task list."""
    return compute_metrics(
        registry.tasks(),
        registry.phase,
        registry.start_time,
        registry.end_time or now or datetime.now(),
    )
