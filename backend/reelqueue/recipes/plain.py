"""
Plain conversion recipe: one convert task per source file.

Each task carries a single "main" output:
- encoder options = codec preset + audio mode + metadata copy
- destination = the file's chosen destination, else the recipe default
- name = <source stem>_<codec>.mp4
"""

from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from ..execution.requests import (
    MAIN_LABEL,
    DestinationRule,
    EncodeRequest,
    InputMode,
    InputSpec,
    NamingRule,
    OutputSpec,
)
from ..jobs.models import ConvertTask, MediaFile, new_id
from .presets import METADATA_OPTIONS, AudioMode, CodecPreset, audio_options, codec_options


class PlainConvertParams(BaseModel):
    """Parameters for plain conversion."""

    model_config = ConfigDict(extra="forbid")

    codec: CodecPreset = CodecPreset.HEVC
    audio: AudioMode = AudioMode.COPY
    destination: DestinationRule = DestinationRule.SAME
    custom_dir: Optional[str] = None


def build_convert_request(
    media: MediaFile,
    params: PlainConvertParams,
) -> EncodeRequest:
    """Build the single-output encode request for one file."""
    options = codec_options(params.codec) + audio_options(params.audio) + list(METADATA_OPTIONS)

    main = OutputSpec(
        label=MAIN_LABEL,
        destination=media.output_destination or params.destination,
        custom_dir=params.custom_dir,
        naming=NamingRule.AUTO,
        name_value=f"_{params.codec.value}",
        extension="mp4",
        encoder_options=options,
    )

    return EncodeRequest(
        input=InputSpec(mode=InputMode.SINGLE, paths=[media.path]),
        outputs=[main],
    )


def compile_plain_convert(
    files: Sequence[MediaFile],
    params: PlainConvertParams,
    id_factory: Callable[[], str] = new_id,
) -> List[ConvertTask]:
    """
    Compile the plain conversion recipe.

    Args:
        files: Source files in list order
        params: Codec / audio / destination choice
        id_factory: Task id generator

    Returns:
        One ConvertTask per file, in input order
    """
    return [
        ConvertTask(
            id=id_factory(),
            source_paths=[media.path],
            size=media.size,
            duration=media.duration,
            request=build_convert_request(media, params),
        )
        for media in files
    ]
