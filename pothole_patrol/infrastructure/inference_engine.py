from __future__ import annotations

import asyncio
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Sequence

import numpy as np
import onnxruntime as ort

from ..domain.camera import Frame
from ..domain.detection import Detection
from ..shared.errors import ModelNotInitializedError, TensorLayoutError
from .tensor_codec import TensorCodec

SessionFactory = Callable[[str], Any]


def _static_dims(shape: Sequence[Any]) -> list[int | None]:
    return [dim if isinstance(dim, int) else None for dim in shape]


class InferenceEngine:
    """Owns one ONNX Runtime session and runs pothole detection on frames.

    The session is loaded lazily by :meth:`initialize`. Only one load runs at a
    time; callers that arrive while a load is in flight wait for it and get
    its outcome instead of loading a second copy. After a successful load the
    session is only read, so :meth:`detect` may be called from an executor
    thread.
    """

    def __init__(
        self,
        codec: TensorCodec,
        logger,
        session_factory: SessionFactory | None = None,
        execution_providers: Sequence[str] = ("CPUExecutionProvider",),
    ) -> None:
        self._codec = codec
        self._logger = logger
        self._execution_providers = list(execution_providers)
        self._session_factory = session_factory or self._create_session
        self._lock = threading.Lock()
        self._session: Any = None
        self._input_name: str | None = None
        self._pending: Future[bool] | None = None
        self._model_path: str | None = None
        self.last_inference_ms: float = 0.0

    @property
    def model_path(self) -> str | None:
        return self._model_path

    def is_ready(self) -> bool:
        return self._session is not None

    def initialize(self, model_path: str) -> bool:
        """Load the model once; returns ``False`` if it cannot be loaded.

        A layout mismatch between the model and the codec raises
        :class:`TensorLayoutError` rather than returning ``False``.
        """

        with self._lock:
            if self._session is not None:
                self._logger.debug("engine.already_loaded", model_path=self._model_path)
                return True
            pending = self._pending
            owner = pending is None
            if owner:
                pending = Future()
                self._pending = pending
        assert pending is not None
        if not owner:
            self._logger.debug("engine.awaiting_inflight_load", model_path=model_path)
            return pending.result()

        try:
            session = self._load(model_path)
        except Exception as exc:
            with self._lock:
                self._pending = None
            pending.set_exception(exc)
            raise

        with self._lock:
            if session is not None:
                self._session = session
                self._input_name = session.get_inputs()[0].name
                self._model_path = model_path
            self._pending = None
        pending.set_result(session is not None)
        return session is not None

    async def initialize_async(self, model_path: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.initialize, model_path)

    def unload(self) -> None:
        with self._lock:
            self._session = None
            self._input_name = None
            self._model_path = None
        self._logger.info("engine.unloaded")

    def detect(self, source: Frame | np.ndarray, confidence_threshold: float) -> list[Detection]:
        session = self._session
        input_name = self._input_name
        if session is None or input_name is None:
            raise ModelNotInitializedError("Model not initialized. Call initialize() first.")

        data = source.data if isinstance(source, Frame) else source
        tensor = self._codec.encode_frame(data)
        start = time.perf_counter()
        outputs = session.run(None, {input_name: tensor})
        self.last_inference_ms = (time.perf_counter() - start) * 1000
        if not outputs:
            raise TensorLayoutError("The model returned no output tensors")
        detections = self._codec.decode_output(outputs[0], confidence_threshold)
        self._logger.debug(
            "engine.inference_completed",
            inference_ms=round(self.last_inference_ms, 2),
            detections=len(detections),
        )
        return detections

    # ------------------------------------------------------------------
    # Internal helpers
    def _create_session(self, model_path: str):
        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.log_severity_level = 3
        return ort.InferenceSession(model_path, sess_options=options, providers=self._execution_providers)

    def _load(self, model_path: str):
        if not Path(model_path).is_file():
            self._logger.error("engine.model_missing", model_path=model_path)
            return None
        try:
            session = self._session_factory(model_path)
        except Exception as exc:
            self._logger.error("engine.load_failed", model_path=model_path, error=str(exc))
            return None
        self._check_layout(session)
        self._logger.info(
            "engine.loaded",
            model_path=model_path,
            input_size=self._codec.target_size,
            classes=self._codec.num_classes,
        )
        return session

    def _check_layout(self, session) -> None:
        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if len(inputs) != 1:
            raise TensorLayoutError(f"Expected 1 model input, got {len(inputs)}")
        if not outputs:
            raise TensorLayoutError("Model declares no outputs")

        size = self._codec.target_size
        expected_in = [1, 3, size, size]
        in_dims = _static_dims(inputs[0].shape)
        if len(in_dims) != 4 or any(
            dim is not None and dim != want for dim, want in zip(in_dims, expected_in)
        ):
            raise TensorLayoutError(f"Unsupported input shape {inputs[0].shape}; expected {expected_in}")

        out_dims = _static_dims(outputs[0].shape)
        if len(out_dims) != 3:
            raise TensorLayoutError(f"Unsupported output shape {outputs[0].shape}")
        channels = out_dims[1]
        if channels is not None and channels != self._codec.expected_channels:
            raise TensorLayoutError(
                f"Model output has {channels} channels, expected {self._codec.expected_channels}"
            )


__all__ = ["InferenceEngine"]
