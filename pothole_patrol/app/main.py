"""Console entry point: run a patrol against a camera or a video file."""

from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from ..application.batch_submission import SubmissionResult
from ..application.patrol_controller import PatrolController
from ..crosscutting.config import AppSettings
from ..domain.camera import Resolution, VideoSource
from ..domain.session import PatrolSession
from ..infrastructure.archive_service import LighthouseArchiveService
from ..infrastructure.opencv_camera import open_camera, open_video_file
from ..shared.errors import ApplicationError, ImageEncodingError
from .container import AppContainer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pothole-patrol", description="On-device pothole detection patrols")
    commands = parser.add_subparsers(dest="command", required=True)

    patrol = commands.add_parser("patrol", help="Run one patrol session.")
    source = patrol.add_mutually_exclusive_group()
    source.add_argument("--camera", type=int, default=None, help="Camera index to read from.")
    source.add_argument("--video", default=None, help="Video file to read from instead of a camera.")
    patrol.add_argument(
        "--duration",
        type=float,
        default=30.0,
        help="Seconds to patrol before stopping.",
    )
    patrol.add_argument(
        "--manual-only",
        action="store_true",
        help="Skip loading the model; only manual captures are recorded.",
    )
    patrol.add_argument(
        "--capture-every",
        type=float,
        default=None,
        help="Take a manual capture every N seconds during the patrol.",
    )
    patrol.add_argument("--submit", action="store_true", help="Submit the session after stopping.")
    patrol.add_argument("--beneficiary", default=None, help="Address credited in the archive metadata.")

    history = commands.add_parser("history", help="List the locally recorded sessions.")
    history.add_argument("--clear", action="store_true", help="Remove every recorded session.")
    return parser


def _open_source(settings: AppSettings, args: argparse.Namespace) -> VideoSource:
    video_path = args.video or (settings.video_path if args.camera is None else None)
    if video_path:
        return open_video_file(video_path, loop=settings.video_loop)
    index = args.camera if args.camera is not None else settings.camera_index
    return open_camera(index, Resolution(settings.frame_width, settings.frame_height), settings.target_fps)


def _print_session(session: PatrolSession) -> None:
    print(
        f"{session.id} status={session.status.value} potholes={session.pothole_count} "
        f"duration={(session.end_time - session.start_time) / 1000:.1f}s"
    )
    for candidate in session.candidates:
        location = candidate.location
        print(
            f"  {candidate.id} conf={candidate.detection.confidence:.2f} "
            f"lat={location.latitude:.6f} lon={location.longitude:.6f} "
            f"status={candidate.status.value}{' manual' if candidate.manual else ''}"
        )


def submission_summary(result: SubmissionResult, archive: LighthouseArchiveService) -> str:
    summary = f"Submitted {result.uploaded_count}/{result.total} reports"
    if result.archive_ref is None:
        return summary
    return f"{summary}\n  archive: {archive.gateway_url(result.archive_ref.content_address)}"


async def _patrol_for(controller: PatrolController, duration: float, capture_every: float | None, logger) -> None:
    if not capture_every:
        await asyncio.sleep(duration)
        return
    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration
    while loop.time() < deadline:
        await asyncio.sleep(min(capture_every, max(0.0, deadline - loop.time())))
        if loop.time() <= deadline:
            try:
                await controller.manual_capture()
            except ImageEncodingError as exc:
                logger.warning("app.capture_skipped", error=str(exc))


async def run_patrol(container: AppContainer, args: argparse.Namespace) -> int:
    settings = container.settings()
    logger = container.logger()

    if not args.manual_only:
        engine = container.engine()
        if not await engine.initialize_async(settings.model_path):
            logger.warning("app.manual_only", model_path=settings.model_path)

    source = _open_source(settings, args)
    controller = container.controller()
    try:
        await controller.start_patrol(source)
        await _patrol_for(controller, args.duration, args.capture_every, logger)
        session = await controller.stop_patrol()
        _print_session(session)

        if args.submit:
            if not controller.can_submit():
                print("Nothing to submit.")
                return 0
            result = await controller.submit(args.beneficiary)
            print(submission_summary(result, container.archive()))
            return 0 if result.complete else 2
    finally:
        await controller.close()
        source.close()
    return 0


def show_history(container: AppContainer, args: argparse.Namespace) -> int:
    history = container.history()
    if args.clear:
        history.clear_history()
        print("History cleared.")
        return 0
    sessions = history.get_sessions()
    if not sessions:
        print("No sessions recorded.")
    for session in sessions:
        _print_session(session)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    container = AppContainer()
    container.logging.init()
    logger = container.logger()
    logger.info("app.started", command=args.command)

    try:
        if args.command == "history":
            return show_history(container, args)
        return asyncio.run(run_patrol(container, args))
    except ApplicationError as exc:
        logger.error("app.failed", error=str(exc), error_type=type(exc).__name__)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
