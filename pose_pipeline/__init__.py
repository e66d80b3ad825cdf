"""
Multi-person pose decoding and inference scheduling.

Turns the raw heatmap / offset / displacement tensors of a PoseNet-style
network into complete skeletons, and pipelines that CPU-bound decode
against model execution so the frame loop never blocks.
"""
from .models import Keypoint, Skeleton, SkeletonTopology, POSENET_TOPOLOGY
from .decoding import PoseTensors, PoseDecoder, extract_keypoints, decode_multiple_poses
from .scheduling import InferenceScheduler, SchedulerState, PredictorController

__version__ = "0.1.0"

__all__ = [
    "Keypoint",
    "Skeleton",
    "SkeletonTopology",
    "POSENET_TOPOLOGY",
    "PoseTensors",
    "PoseDecoder",
    "extract_keypoints",
    "decode_multiple_poses",
    "InferenceScheduler",
    "SchedulerState",
    "PredictorController",
]
