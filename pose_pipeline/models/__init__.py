"""
Data models for decoded poses and skeleton topologies.
"""
from .keypoint import Keypoint, Skeleton
from .keypoint_schema import (
    PosenetKeypoint,
    KEYPOINT_COUNT,
    POSENET_BONE_TREE,
    POSENET_DISPLAY_BONES,
    get_keypoint_name,
)
from .topology import SkeletonTopology, TopologyRegistry, POSENET_TOPOLOGY
from .projection import DepthProvider, unproject_skeleton

__all__ = [
    "Keypoint",
    "Skeleton",
    "PosenetKeypoint",
    "KEYPOINT_COUNT",
    "POSENET_BONE_TREE",
    "POSENET_DISPLAY_BONES",
    "get_keypoint_name",
    "SkeletonTopology",
    "TopologyRegistry",
    "POSENET_TOPOLOGY",
    "DepthProvider",
    "unproject_skeleton",
]
