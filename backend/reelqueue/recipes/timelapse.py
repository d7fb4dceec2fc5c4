"""
Dual-timescale recipe (fan-out / fan-in digest).

Per source file, one convert task splits the video stream in two:
- Branch A: fixed 60x speed-up, 60fps → "main" output (video library,
  <stem>_60x.mp4, SVT-AV1)
- Branch B: speed_factor speed-up, 60fps, rotated 90° → "temp_chunk"
  output (intermediate storage, generated name, .mov, x265)

Then one concat task stream-copies every temp chunk, in input order, into
Digest_YYYY-MM-DD_HH-MM-SS.mov. Optionally one trash task per original.

speed_factor = max(1, total duration / target duration), 1 when the
total duration is 0. Audio is dropped on every output.
"""

from datetime import datetime, timezone
from typing import Callable, List, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..execution.requests import (
    MAIN_LABEL,
    TEMP_CHUNK_LABEL,
    DestinationRule,
    EncodeRequest,
    InputMode,
    InputSpec,
    NamingRule,
    OutputSpec,
)
from ..jobs.models import ConcatTask, ConvertTask, MediaFile, Task, TrashTask, new_id
from .presets import CONCAT_COPY_OPTIONS, STREAM_METADATA_OPTIONS


# Fixed speed-up of the main branch
MAIN_TIME_SCALE = 60.0

OUTPUT_FPS = 60

DIGEST_PREFIX = "Digest_"


class DualTimescaleParams(BaseModel):
    """Parameters for the dual-timescale digest."""

    model_config = ConfigDict(extra="forbid")

    target_duration: float = Field(default=60.0, gt=0)
    trash_original: bool = False


def compute_speed_factor(total_duration: float, target_duration: float) -> float:
    """Speed-up applied to the temp branch so the digest fits the target."""
    if total_duration <= 0:
        return 1.0
    return max(1.0, total_duration / target_duration)


def format_factor(value: float) -> str:
    """Render a factor for a filter expression (60.0 → "60")."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def build_filter_graph(speed_factor: float) -> str:
    """Split [0:v] into the main and temp branches."""
    return (
        "[0:v]split=2[v_in1][v_in2];"
        f"[v_in1]setpts=PTS/{format_factor(MAIN_TIME_SCALE)},fps={OUTPUT_FPS}[v_main];"
        f"[v_in2]setpts=PTS/{format_factor(speed_factor)},fps={OUTPUT_FPS},transpose=1[v_temp]"
    )


def digest_name(moment: datetime) -> str:
    """Digest_YYYY-MM-DD_HH-MM-SS for the given moment."""
    return f"{DIGEST_PREFIX}{moment.strftime('%Y-%m-%d_%H-%M-%S')}"


def build_split_request(media: MediaFile, speed_factor: float) -> EncodeRequest:
    main = OutputSpec(
        label=MAIN_LABEL,
        destination=DestinationRule.VIDEOS,
        naming=NamingRule.AUTO,
        name_value="_60x",
        extension="mp4",
        encoder_options=["-map", "[v_main]", "-c:v", "libsvtav1"]
        + list(STREAM_METADATA_OPTIONS)
        + ["-an"],
    )
    temp_chunk = OutputSpec(
        label=TEMP_CHUNK_LABEL,
        destination=DestinationRule.TEMP,
        naming=NamingRule.UUID,
        extension="mov",
        encoder_options=["-map", "[v_temp]", "-c:v", "libx265", "-crf", "23", "-tag:v", "hvc1"]
        + list(STREAM_METADATA_OPTIONS)
        + ["-an"],
    )
    return EncodeRequest(
        input=InputSpec(mode=InputMode.SINGLE, paths=[media.path]),
        global_options=["-filter_complex", build_filter_graph(speed_factor)],
        outputs=[main, temp_chunk],
    )


def build_concat_request(moment: datetime) -> EncodeRequest:
    """Concat request; input paths are filled in at run time."""
    return EncodeRequest(
        input=InputSpec(mode=InputMode.CONCAT, paths=[]),
        outputs=[
            OutputSpec(
                label=MAIN_LABEL,
                destination=DestinationRule.VIDEOS,
                naming=NamingRule.FIXED,
                name_value=digest_name(moment),
                extension="mov",
                encoder_options=list(CONCAT_COPY_OPTIONS),
            )
        ],
    )


def compile_dual_timescale(
    files: Sequence[MediaFile],
    params: DualTimescaleParams,
    id_factory: Callable[[], str] = new_id,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> List[Task]:
    """
    Compile the dual-timescale recipe.

    Args:
        files: Source files in list order
        params: Target digest duration and trash choice
        id_factory: Task id generator
        clock: Time source for the digest name

    Returns:
        convert tasks (one per file), one concat task, then trash tasks
        (one per file when trash_original is set)
    """
    total_duration = sum(media.duration for media in files)
    speed_factor = compute_speed_factor(total_duration, params.target_duration)

    tasks: List[Task] = []
    chunk_refs: List[str] = []

    for media in files:
        task_id = id_factory()
        chunk_refs.append(task_id)
        tasks.append(
            ConvertTask(
                id=task_id,
                source_paths=[media.path],
                size=media.size,
                duration=media.duration,
                time_scale=MAIN_TIME_SCALE,
                request=build_split_request(media, speed_factor),
            )
        )

    if chunk_refs:
        tasks.append(
            ConcatTask(
                id=id_factory(),
                source_paths=[f"Merging {len(files)} clips..."],
                duration=params.target_duration,
                dependency_refs=chunk_refs,
                request=build_concat_request(clock()),
            )
        )

    if params.trash_original:
        for media in files:
            tasks.append(
                TrashTask(
                    id=id_factory(),
                    source_paths=[media.path],
                    size=media.size,
                )
            )

    return tasks
