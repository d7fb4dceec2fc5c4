"""
Authoritative output path resolver.

Single source of truth for where a runner writes an output file.

Rules:
- Directory comes from the DestinationRule:
    same      → the source file's directory
    videos    → <videos_dir>/<app folder>
    downloads → <downloads_dir>/<app folder>
    temp      → <temp_root>/<app folder>/Intermediate
    custom    → OutputSpec.custom_dir
- Filename comes from the NamingRule:
    auto  → <source stem><name_value>.<ext>
    fixed → <name_value>.<ext>
    uuid  → <generated id>.<ext>
- Runners NEVER construct paths themselves.

This module is the ONLY place where output paths are computed.
"""

import uuid
from pathlib import Path
from typing import Callable, Optional

from ..settings import AppSettings
from .errors import OutputPathError
from .requests import DestinationRule, NamingRule, OutputSpec


def resolve_output_dir(
    source_path: Optional[str],
    spec: OutputSpec,
    settings: AppSettings,
) -> Path:
    """
    Resolve the directory for one output.

    Raises:
        OutputPathError: If the rule needs information that is missing
    """
    destination = spec.destination

    if destination == DestinationRule.SAME:
        if not source_path:
            raise OutputPathError(
                f"Output '{spec.label}' uses destination 'same' but has no source path"
            )
        return Path(source_path).parent

    if destination == DestinationRule.VIDEOS:
        return Path(settings.videos_dir) / settings.app_folder_name

    if destination == DestinationRule.DOWNLOADS:
        return Path(settings.downloads_dir) / settings.app_folder_name

    if destination == DestinationRule.TEMP:
        return settings.intermediate_dir

    if destination == DestinationRule.CUSTOM:
        if not spec.custom_dir:
            raise OutputPathError(
                f"Output '{spec.label}' uses destination 'custom' without custom_dir"
            )
        return Path(spec.custom_dir)

    raise OutputPathError(f"Unknown destination rule: {destination}")


def resolve_output_name(
    source_path: Optional[str],
    spec: OutputSpec,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> str:
    """
    Resolve the filename (with extension) for one output.

    Raises:
        OutputPathError: If the rule produces an empty name
    """
    extension = spec.extension.lstrip(".")

    if spec.naming == NamingRule.FIXED:
        stem = spec.name_value
    elif spec.naming == NamingRule.UUID:
        stem = id_factory()
    else:
        if not source_path:
            raise OutputPathError(
                f"Output '{spec.label}' uses auto naming but has no source path"
            )
        stem = f"{Path(source_path).stem}{spec.name_value}"

    if not stem:
        raise OutputPathError(f"Output '{spec.label}' resolved to an empty filename")

    return f"{stem}.{extension}" if extension else stem


def resolve_output_path(
    source_path: Optional[str],
    spec: OutputSpec,
    settings: AppSettings,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> Path:
    """
    Resolve the full output path for one output of a request.

    Args:
        source_path: First input path (None for inputs without a natural source)
        spec: Output placement and naming rules
        settings: Base directories
        id_factory: Generator for uuid naming

    Returns:
        Path to the output file (directory not created)

    Raises:
        OutputPathError: If the path cannot be resolved
    """
    directory = resolve_output_dir(source_path, spec, settings)
    filename = resolve_output_name(source_path, spec, id_factory)
    return directory / filename
