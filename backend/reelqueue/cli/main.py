"""
reelqueue command line.

    reelqueue convert FILES... [--codec hevc|av1] [--audio copy|none] [--dest RULE]
    reelqueue digest FILES... --target SECONDS [--trash] [--yes]

Exit codes:
    0  run completed
    1  validation error (nothing usable to run)
    2  run aborted or cancelled
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from ..deletion.service import LocalDeleteService
from ..execution.ffmpeg import FFmpegProcessRunner
from ..execution.ffprobe import FFprobeAnalyzer
from ..execution.requests import DestinationRule
from ..jobs.state import RunOutcome
from ..monitoring.metrics import format_bytes
from ..recipes.presets import AudioMode, CodecPreset
from ..settings import AppSettings
from .commands import run_recipe, summarize
from .errors import CLIError

logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_RUN_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reelqueue",
        description="Batch video transcoding with ffmpeg",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log verbosity (-v info, -vv debug)")

    sub = parser.add_subparsers(dest="command", required=True)

    convert = sub.add_parser("convert", help="Re-encode each file to HEVC or AV1")
    convert.add_argument("files", nargs="+", help="Source files")
    convert.add_argument("--codec", choices=[c.value for c in CodecPreset], default=CodecPreset.HEVC.value)
    convert.add_argument("--audio", choices=[a.value for a in AudioMode], default=AudioMode.COPY.value)
    convert.add_argument("--dest", choices=[d.value for d in DestinationRule if d != DestinationRule.CUSTOM],
                         default=DestinationRule.SAME.value, help="Output location")

    digest = sub.add_parser("digest", help="60x copies plus one merged digest of a target length")
    digest.add_argument("files", nargs="+", help="Source files, in digest order")
    digest.add_argument("--target", type=float, required=True, help="Digest length in seconds")
    digest.add_argument("--trash", action="store_true", help="Move the originals to the trash afterwards")
    digest.add_argument("--yes", action="store_true", help="Do not ask before moving originals to the trash")

    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "convert":
        recipe_id = "convert"
        params = {"codec": args.codec, "audio": args.audio, "destination": args.dest}
    else:
        recipe_id = "dual-timescale"
        params = {"target_duration": args.target, "trash_original": args.trash}

    async def confirm(pending) -> bool:
        if getattr(args, "yes", False):
            return True
        print(f"Move {pending.size} original file(s) to the trash?")
        for ticket in pending.tickets:
            print(f"  {ticket.path}")
        answer = await asyncio.to_thread(input, "Type 'yes' to confirm: ")
        answer = answer.strip().lower()
        return answer == "yes"

    settings = AppSettings.from_env()
    runner = FFmpegProcessRunner(settings)

    try:
        report, registry = asyncio.run(
            run_recipe(
                recipe_id,
                args.files,
                params,
                analyzer=FFprobeAnalyzer(settings),
                runner=runner,
                delete_service=LocalDeleteService(),
                channel=runner.channel,
                confirm_delete=confirm,
            )
        )
    except CLIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_VALIDATION

    for task in registry.tasks():
        line = f"[{task.status.value:>10}] {task.kind:<7} {task.display_name}"
        if task.failure_reason:
            line += f" ({task.failure_reason})"
        print(line)

    metrics = summarize(registry)
    print(
        f"{report.outcome.value}: {metrics.completed_count}/{metrics.total_count} done, "
        f"{format_bytes(metrics.current_encoded_bytes)} written, "
        f"elapsed {metrics.elapsed_seconds:.1f}s"
    )
    if metrics.reduction_rate_percent is not None and report.outcome == RunOutcome.COMPLETED:
        print(f"Size change vs. originals: {-metrics.reduction_rate_percent:+.1f}%")

    if report.outcome != RunOutcome.COMPLETED:
        return EXIT_RUN_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
