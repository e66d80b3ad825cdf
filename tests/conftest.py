"""Shared fixtures: synthetic PoseNet tensors with known skeleton layouts."""
import pytest
import numpy as np

from pose_pipeline.config import DecodingConfig, ModelOutputsConfig, PipelineConfig
from pose_pipeline.decoding.tensors import PoseTensors
from pose_pipeline.predictors.base import CompletedExecution, ExecutionHandle, PredictorBackend
from pose_pipeline.models.topology import POSENET_TOPOLOGY

STRIDE = 16

# Grid cell (x, y) of each PoseNet part relative to the person's origin cell.
# Spans 5 cells wide and 7 cells tall.
PERSON_LAYOUT = [
    (2, 0),  # nose
    (3, 0),  # left_eye
    (1, 0),  # right_eye
    (4, 1),  # left_ear
    (0, 1),  # right_ear
    (3, 2),  # left_shoulder
    (1, 2),  # right_shoulder
    (4, 3),  # left_elbow
    (0, 3),  # right_elbow
    (4, 4),  # left_wrist
    (0, 4),  # right_wrist
    (3, 4),  # left_hip
    (1, 4),  # right_hip
    (3, 5),  # left_knee
    (1, 5),  # right_knee
    (3, 6),  # left_ankle
    (1, 6),  # right_ankle
]


def person_cells(origin):
    ox, oy = origin
    return [(ox + gx, oy + gy) for gx, gy in PERSON_LAYOUT]


def build_tensors(people, height=17, width=17, topology=POSENET_TOPOLOGY, stride=STRIDE):
    """
    Build tensors encoding people laid out on grid cells.

    Args:
        people: List of (origin_cell, scores) where scores is a float for
            every part or a list with one score per part
        height, width: Heatmap grid size

    Offsets are zero, so every part sits exactly at cell * stride, and both
    displacement fields point exactly from one part's cell to its neighbour's.
    """
    P, E = topology.num_parts, topology.num_edges
    heatmap = np.zeros((1, height, width, P), dtype=np.float32)
    offsets = np.zeros((1, height, width, 2 * P), dtype=np.float32)
    fwd = np.zeros((1, height, width, 2 * E), dtype=np.float32)
    bwd = np.zeros((1, height, width, 2 * E), dtype=np.float32)

    for origin, scores in people:
        cells = person_cells(origin)
        if np.isscalar(scores):
            scores = [scores] * P
        for part, (x, y) in enumerate(cells):
            heatmap[0, y, x, part] = scores[part]
        for edge_id, (parent, child) in enumerate(topology.edges):
            (px, py), (cx, cy) = cells[parent], cells[child]
            dx, dy = (cx - px) * stride, (cy - py) * stride
            fwd[0, py, px, edge_id] = dy
            fwd[0, py, px, edge_id + E] = dx
            bwd[0, cy, cx, edge_id] = -dy
            bwd[0, cy, cx, edge_id + E] = -dx

    return PoseTensors(heatmap, offsets, fwd, bwd)


def expected_positions(origin, stride=STRIDE):
    return [(float(x * stride), float(y * stride)) for x, y in person_cells(origin)]


@pytest.fixture
def single_person_tensors():
    """One person at origin (0, 0), every part scored 0.9."""
    return build_tensors([((0, 0), 0.9)])


@pytest.fixture
def two_people_tensors():
    """Two well-separated people: (0, 0) at 0.9 and (8, 8) at 0.8."""
    return build_tensors([((0, 0), 0.9), ((8, 8), 0.8)])


@pytest.fixture
def decoding_config():
    return DecodingConfig(stride=STRIDE)


@pytest.fixture
def pipeline_config(decoding_config):
    """Config for feeding probability heatmaps straight through (no sigmoid)."""
    return PipelineConfig(
        decoding=decoding_config,
        model_outputs=ModelOutputsConfig(apply_sigmoid=False),
    )


def tensors_to_outputs(tensors, config=None):
    """Name the tensors the way a model runner would return them."""
    names = (config or PipelineConfig()).model_outputs
    return {
        names.heatmap: tensors.heatmap,
        names.offsets: tensors.offsets,
        names.displacement_fwd: tensors.displacement_fwd,
        names.displacement_bwd: tensors.displacement_bwd,
    }


class ManualHandle(ExecutionHandle):
    """Device handle completed by the test."""

    def __init__(self, outputs, error=None):
        self.done = False
        self._outputs = outputs
        self._error = error

    def is_done(self):
        return self.done

    def outputs(self):
        if self._error is not None:
            raise self._error
        return self._outputs


class FakeBackend(PredictorBackend):
    """Backend whose decode echoes the frame back as the single result."""

    def __init__(self, name="fake", decode_fn=None, handle_fn=None, preprocess_error=None):
        self._name = name
        self.decode_fn = decode_fn
        self.handle_fn = handle_fn
        self.preprocess_error = preprocess_error
        self.decoded = []
        self.closed = False

    def name(self):
        return self._name

    def preprocess(self, frame):
        if self.preprocess_error is not None:
            raise self.preprocess_error
        return frame

    def execute(self, inputs):
        if self.handle_fn is not None:
            return self.handle_fn({"frame": inputs})
        return CompletedExecution({"frame": inputs})

    def decode(self, outputs):
        self.decoded.append(outputs["frame"])
        if self.decode_fn is not None:
            return self.decode_fn(outputs)
        return [outputs["frame"]]

    def close(self):
        self.closed = True
