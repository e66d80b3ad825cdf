"""
Keypoint extraction: local-maximum peaks of the part heatmap.
"""
import logging
from typing import List

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..models.keypoint import Keypoint
from .tensors import DecodeContractError, image_coords, validate_stride

logger = logging.getLogger(__name__)


def local_maximum_mask(scores: np.ndarray, local_radius: int) -> np.ndarray:
    """
    Mark cells that no neighbour within the window strictly exceeds.

    Args:
        scores: Heatmap without batch dimension, shape (H, W, P)
        local_radius: Half-size of the (2r+1) x (2r+1) window, clipped at borders

    Returns:
        Boolean array of shape (H, W, P). Equal neighbours do not disqualify.
    """
    if local_radius <= 0:
        return np.ones(scores.shape, dtype=bool)

    r = int(local_radius)
    padded = np.pad(scores, ((r, r), (r, r), (0, 0)), mode="constant", constant_values=-np.inf)
    # Shape: (H, W, P, 2r+1, 2r+1)
    windows = sliding_window_view(padded, (2 * r + 1, 2 * r + 1), axis=(0, 1))
    local_max = windows.max(axis=(-2, -1))
    return scores >= local_max


def extract_keypoints(
    heatmap: np.ndarray,
    offsets: np.ndarray,
    stride: int,
    score_threshold: float = 0.5,
    local_radius: int = 1,
) -> List[Keypoint]:
    """
    Collect every heatmap peak at or above the score threshold.

    Args:
        heatmap: [1, H, W, P] part confidences
        offsets: [1, H, W, 2P] sub-pixel offsets
        stride: Heatmap cell size in image pixels
        score_threshold: Minimum confidence (inclusive)
        local_radius: Peak-detection window half-size

    Returns:
        Candidate keypoints in unspecified order
    """
    validate_stride(stride)
    if heatmap.ndim != 4 or heatmap.shape[0] != 1:
        raise DecodeContractError(f"heatmap must have shape [1, H, W, P], got {heatmap.shape}")
    if local_radius < 0:
        raise DecodeContractError(f"local_radius must be non-negative, got {local_radius}")
    if offsets.shape[:3] != heatmap.shape[:3] or offsets.shape[3] != 2 * heatmap.shape[3]:
        raise DecodeContractError(
            f"offsets shape {offsets.shape} doesn't match heatmap shape {heatmap.shape}"
        )

    scores = heatmap[0]
    if scores.size == 0:
        return []

    mask = (scores >= np.float32(score_threshold)) & local_maximum_mask(scores, local_radius)
    ys, xs, parts = np.nonzero(mask)

    candidates = []
    for y, x, part in zip(ys.tolist(), xs.tolist(), parts.tolist()):
        position = image_coords((x, y), part, stride, offsets)
        candidates.append(Keypoint(part, float(scores[y, x, part]), position, (x, y)))

    logger.debug(f"Extracted {len(candidates)} keypoint candidates above {score_threshold}")
    return candidates
