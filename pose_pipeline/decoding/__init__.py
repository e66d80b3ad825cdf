"""
Decoding of raw network tensors into keypoints and skeletons.
"""
from .tensors import (
    DecodeContractError,
    PoseTensors,
    compute_stride,
    get_displacement,
    get_offset_vector,
    strided_index_near_point,
)
from .keypoint_extraction import extract_keypoints, local_maximum_mask
from .pose_decoder import MATCH_RADIUS_SQ, KeypointPool, PoseDecoder, decode_multiple_poses

__all__ = [
    "DecodeContractError",
    "PoseTensors",
    "compute_stride",
    "get_displacement",
    "get_offset_vector",
    "strided_index_near_point",
    "extract_keypoints",
    "local_maximum_mask",
    "MATCH_RADIUS_SQ",
    "KeypointPool",
    "PoseDecoder",
    "decode_multiple_poses",
]
