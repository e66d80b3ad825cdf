"""
PoseNet predictor backend.

Wraps any model runner that maps an input batch to the four named PoseNet
output tensors and decodes those tensors into skeletons.
"""
import logging
from typing import Any, Callable, List, Mapping, Optional

import numpy as np

from ..config import PipelineConfig
from ..decoding.pose_decoder import PoseDecoder
from ..decoding.tensors import DecodeContractError, PoseTensors, compute_stride
from ..models.keypoint import Skeleton
from ..models.topology import POSENET_TOPOLOGY, SkeletonTopology
from .base import CompletedExecution, ExecutionHandle, PredictorBackend

logger = logging.getLogger(__name__)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Logistic activation, computed in float32."""
    x = np.asarray(x, dtype=np.float32)
    return (1.0 / (1.0 + np.exp(-x))).astype(np.float32)


def default_preprocess(frame: Any) -> np.ndarray:
    """Turn an (H, W, C) or (1, H, W, C) image into a float32 batch."""
    batch = np.asarray(frame, dtype=np.float32)
    if batch.ndim == 3:
        batch = batch[np.newaxis]
    if batch.ndim != 4 or batch.shape[0] != 1:
        raise ValueError(f"Expected an (H, W, C) frame or a batch of one, got shape {batch.shape}")
    return batch


class PosenetBackend(PredictorBackend):
    """
    Multi-person PoseNet predictor.

    Args:
        model_runner: Callable taking the preprocessed batch and returning
            either a mapping of output name -> array or an ExecutionHandle
        config: Pipeline configuration (decode settings and output names)
        topology: Skeleton topology the model was trained with
        preprocess_fn: Frame -> [1, H, W, C] batch; default_preprocess if None
        name: Predictor name used in logs and by the controller
    """

    def __init__(
        self,
        model_runner: Callable[[np.ndarray], Any],
        config: Optional[PipelineConfig] = None,
        topology: SkeletonTopology = POSENET_TOPOLOGY,
        preprocess_fn: Optional[Callable[[Any], np.ndarray]] = None,
        name: str = "posenet",
    ):
        self.config = config if config is not None else PipelineConfig()
        self.topology = topology
        self.decoder = PoseDecoder(self.config.decoding, topology)
        self._runner = model_runner
        self._preprocess_fn = preprocess_fn or default_preprocess
        self._name = name
        self._input_height: Optional[int] = None

    def name(self) -> str:
        return self._name

    def preprocess(self, frame: Any) -> np.ndarray:
        batch = self._preprocess_fn(frame)
        self._input_height = int(batch.shape[1])
        return batch

    def execute(self, inputs: np.ndarray) -> ExecutionHandle:
        result = self._runner(inputs)
        if isinstance(result, ExecutionHandle):
            return result
        return CompletedExecution(result)

    def tensors_from_outputs(self, outputs: Mapping[str, np.ndarray]) -> PoseTensors:
        names = self.config.model_outputs
        missing = [
            n for n in (names.heatmap, names.offsets, names.displacement_fwd, names.displacement_bwd)
            if n not in outputs
        ]
        if missing:
            raise DecodeContractError(f"Model outputs missing tensors {missing}; got {sorted(outputs)}")

        heatmap = np.asarray(outputs[names.heatmap], dtype=np.float32)
        if names.apply_sigmoid:
            heatmap = sigmoid(heatmap)

        return PoseTensors(
            heatmap=heatmap,
            offsets=np.asarray(outputs[names.offsets], dtype=np.float32),
            displacement_fwd=np.asarray(outputs[names.displacement_fwd], dtype=np.float32),
            displacement_bwd=np.asarray(outputs[names.displacement_bwd], dtype=np.float32),
        )

    def resolve_stride(self, tensors: PoseTensors) -> int:
        cfg = self.config.decoding
        if cfg.stride is not None:
            return cfg.stride
        if self._input_height is None:
            raise DecodeContractError("No stride configured and no input size recorded; call preprocess first")
        return compute_stride(self._input_height, tensors.height, cfg.stride_multiple)

    def decode(self, outputs: Mapping[str, np.ndarray]) -> List[Skeleton]:
        tensors = self.tensors_from_outputs(outputs)
        stride = self.resolve_stride(tensors)
        poses = self.decoder.decode(tensors, stride)
        logger.debug(f"[{self._name}] decoded {len(poses)} poses at stride {stride}")
        return poses
