"""Composition root for the patrol application."""

from __future__ import annotations

from dependency_injector import containers, providers

from ..application.batch_submission import BatchSubmissionCoordinator
from ..application.detection_scheduler import DetectionScheduler
from ..application.patrol_controller import PatrolController
from ..application.patrol_session import PatrolSessionMachine
from ..crosscutting.config import AppSettings, load_settings
from ..crosscutting.logging_setup import get_logger, setup_logging
from ..domain.report import Location
from ..infrastructure.archive_service import LighthouseArchiveService
from ..infrastructure.geolocation import StaticGeolocationProvider, UnavailableGeolocationProvider
from ..infrastructure.inference_engine import InferenceEngine
from ..infrastructure.proof_provider import UnavailableProofProvider
from ..infrastructure.report_backend import HttpProofVerifier, HttpReportBackend
from ..infrastructure.session_history import InMemorySessionHistory, JsonFileSessionHistory, SessionHistory
from ..infrastructure.tensor_codec import TensorCodec
from ..shared.bus import EventBus
from ..shared.scheduling import SystemClock


def _geolocation_provider(settings: AppSettings):
    if settings.has_static_position:
        return StaticGeolocationProvider(settings.static_latitude, settings.static_longitude)
    return UnavailableGeolocationProvider()


def _session_history(settings: AppSettings) -> SessionHistory:
    if settings.history_path is not None:
        return JsonFileSessionHistory(settings.history_path)
    return InMemorySessionHistory()


class AppContainer(containers.DeclarativeContainer):
    settings = providers.Singleton(load_settings)
    logging = providers.Resource(
        setup_logging,
        level=settings.provided.log_level,
        fmt=settings.provided.log_format,
    )
    logger = providers.Singleton(get_logger, "pothole_patrol")

    #region Extras
    clock = providers.Singleton(SystemClock)
    bus = providers.Singleton(EventBus)
    #endregion

    #region Inference
    codec = providers.Singleton(
        TensorCodec,
        target_size=settings.provided.input_size,
        num_classes=settings.provided.num_classes,
        class_labels=settings.provided.class_labels,
    )
    engine = providers.Singleton(
        InferenceEngine,
        codec=codec,
        logger=providers.Singleton(get_logger, "pothole_patrol.engine"),
        execution_providers=settings.provided.execution_providers,
    )
    #endregion

    #region Collaborators
    geolocation = providers.Singleton(_geolocation_provider, settings)
    fallback_location = providers.Singleton(
        Location,
        settings.provided.fallback_latitude,
        settings.provided.fallback_longitude,
    )
    report_backend = providers.Singleton(
        HttpReportBackend,
        base_url=settings.provided.backend_url,
        timeout=settings.provided.http_timeout,
    )
    proof_verifier = providers.Singleton(
        HttpProofVerifier,
        base_url=settings.provided.backend_url,
        verify_path=settings.provided.verify_path,
        timeout=settings.provided.http_timeout,
    )
    proof_provider = providers.Singleton(UnavailableProofProvider)
    archive = providers.Singleton(
        LighthouseArchiveService,
        api_key=settings.provided.archive_api_key,
        upload_url=settings.provided.archive_upload_url,
        gateway_url=settings.provided.archive_gateway_url,
    )
    history = providers.Singleton(_session_history, settings)
    #endregion

    #region Patrol
    machine = providers.Singleton(PatrolSessionMachine)
    scheduler = providers.Singleton(
        DetectionScheduler,
        detector=engine,
        geolocation=geolocation,
        logger=providers.Singleton(get_logger, "pothole_patrol.scheduler"),
        clock=clock,
        bus=bus,
        debounce_ms=settings.provided.debounce_ms,
        geolocation_timeout=settings.provided.geolocation_timeout,
        fallback_location=fallback_location,
        image_quality=settings.provided.jpeg_quality,
    )
    coordinator = providers.Singleton(
        BatchSubmissionCoordinator,
        backend=report_backend,
        archive=archive,
        proof_provider=proof_provider,
        proof_verifier=proof_verifier,
        logger=providers.Singleton(get_logger, "pothole_patrol.submission"),
        clock=clock,
        action=settings.provided.proof_action,
    )
    controller = providers.Singleton(
        PatrolController,
        machine=machine,
        scheduler=scheduler,
        coordinator=coordinator,
        history=history,
        detector=engine,
        bus=bus,
        logger=providers.Singleton(get_logger, "pothole_patrol.patrol"),
        clock=clock,
        confidence_threshold=settings.provided.confidence_threshold,
        poll_interval_ms=settings.provided.poll_interval_ms,
    )
    #endregion


__all__ = ["AppContainer"]
