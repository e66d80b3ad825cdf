"""
Lifting decoded 2D skeletons into camera space.

Depth comes from another predictor (e.g. a depth-estimation model); it is
passed in explicitly as a DepthProvider rather than looked up globally.
"""
from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np

from .keypoint import Skeleton


class DepthProvider(ABC):
    """
    Source of per-pixel depth and the camera model used to unproject it.

    Points are in normalized image coordinates: (0, 0) top-left, (1, 1)
    bottom-right.
    """

    @abstractmethod
    def depth_for_pixel(self, point: Tuple[float, float]) -> float: ...

    @abstractmethod
    def unproject_point(self, point: Tuple[float, float], depth: float) -> Tuple[float, float, float]: ...


def unproject_skeleton(
    skeleton: Skeleton,
    image_size: Tuple[int, int],
    depth_provider: DepthProvider,
) -> np.ndarray:
    """
    Unproject every keypoint of a skeleton into 3D.

    Args:
        skeleton: Decoded skeleton in image pixel coordinates
        image_size: (width, height) of the image the network saw
        depth_provider: Depth source and camera model

    Returns:
        Array of shape (K, 3), one camera-space point per part id
    """
    width, height = image_size
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {image_size}")

    points = np.zeros((len(skeleton), 3), dtype=np.float32)
    for kp in skeleton:
        norm = (kp.x / width, kp.y / height)
        depth = depth_provider.depth_for_pixel(norm)
        points[kp.part_id] = depth_provider.unproject_point(norm, depth)
    return points
