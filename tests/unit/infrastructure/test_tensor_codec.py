from __future__ import annotations

import numpy as np
import pytest

from fakes import make_frame
from pothole_patrol.infrastructure.tensor_codec import TensorCodec, UNKNOWN_LABEL
from pothole_patrol.shared.errors import TensorLayoutError


def _output(anchors: list[tuple[float, float, float, float, list[float]]]) -> np.ndarray:
    """Build a ``[1, 4 + C, A]`` tensor from per-anchor (cx, cy, w, h, scores)."""

    columns = [[cx, cy, w, h, *scores] for cx, cy, w, h, scores in anchors]
    return np.asarray(columns, dtype=np.float32).T[np.newaxis, ...]


@pytest.mark.parametrize(
    "frame",
    [
        make_frame(height=48, width=64),
        np.random.default_rng(7).integers(0, 256, size=(720, 1280, 3), dtype=np.uint8),
        np.full((30, 30), 200, dtype=np.uint8),
        np.zeros((16, 24, 4), dtype=np.uint8),
    ],
    ids=["bgr", "hd", "gray", "bgra"],
)
def test_encode_frame_produces_planar_unit_tensor(frame: np.ndarray) -> None:
    codec = TensorCodec(target_size=32)

    tensor = codec.encode_frame(frame)

    assert tensor.shape == (1, 3, 32, 32)
    assert tensor.dtype == np.float32
    assert tensor.size == 3 * 32 * 32
    assert tensor.min() >= 0.0
    assert tensor.max() <= 1.0


def test_encode_frame_reorders_bgr_to_rgb_planes() -> None:
    codec = TensorCodec(target_size=8)
    frame = np.zeros((8, 8, 3), dtype=np.uint8)
    frame[..., 2] = 255  # red in BGR order

    tensor = codec.encode_frame(frame)

    assert np.allclose(tensor[0, 0], 1.0)
    assert np.allclose(tensor[0, 1:], 0.0)


def test_encode_frame_reuses_scratch_canvas() -> None:
    codec = TensorCodec(target_size=16)

    codec.encode_frame(make_frame())
    canvas = codec.canvas
    codec.encode_frame(make_frame(value=10, height=100, width=30))

    assert canvas is not None
    assert codec.canvas is canvas


def test_decode_output_keeps_anchor_order_and_threshold() -> None:
    codec = TensorCodec(target_size=640)
    output = _output(
        [
            (100.0, 100.0, 20.0, 10.0, [0.70]),
            (200.0, 200.0, 40.0, 40.0, [0.30]),
            (320.0, 320.0, 64.0, 32.0, [0.95]),
        ]
    )

    detections = codec.decode_output(output, confidence_threshold=0.5)

    assert [round(d.confidence, 2) for d in detections] == [0.70, 0.95]
    assert all(d.confidence >= 0.5 for d in detections)
    assert detections[1].bounding_box.as_tuple() == (288.0, 304.0, 64.0, 32.0)
    assert {d.label for d in detections} == {"pothole"}


def test_decode_output_includes_scores_equal_to_threshold() -> None:
    codec = TensorCodec()
    output = _output([(10.0, 10.0, 2.0, 2.0, [0.5])])

    assert len(codec.decode_output(output, confidence_threshold=0.5)) == 1


def test_decode_output_resolves_multi_class_labels_with_fallback() -> None:
    codec = TensorCodec(num_classes=3, class_labels={0: "pothole", 1: "crack"})
    output = _output(
        [
            (10.0, 10.0, 4.0, 4.0, [0.1, 0.8, 0.2]),
            (20.0, 20.0, 4.0, 4.0, [0.1, 0.2, 0.9]),
        ]
    )

    detections = codec.decode_output(output, confidence_threshold=0.5)

    assert [d.label for d in detections] == ["crack", UNKNOWN_LABEL]
    assert [round(d.confidence, 2) for d in detections] == [0.8, 0.9]


@pytest.mark.parametrize(
    "shape",
    [(1, 6, 10), (1, 4, 10), (2, 5, 10), (5, 10)],
)
def test_decode_output_rejects_layout_mismatch(shape) -> None:
    codec = TensorCodec(num_classes=1)

    with pytest.raises(TensorLayoutError):
        codec.decode_output(np.zeros(shape, dtype=np.float32), confidence_threshold=0.5)


def test_codec_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        TensorCodec(target_size=0)
    with pytest.raises(ValueError):
        TensorCodec(num_classes=0)
