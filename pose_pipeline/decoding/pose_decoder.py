"""
Greedy multi-person pose decoding.

Candidates are taken strongest first; each one that survives non-maximum
suppression seeds a skeleton, which is completed by walking the topology
through the backward and then the forward displacement fields.
"""
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..config import DecodingConfig
from ..models.keypoint import Keypoint, Skeleton
from ..models.topology import POSENET_TOPOLOGY, SkeletonTopology
from .keypoint_extraction import extract_keypoints
from .tensors import (
    DecodeContractError,
    PoseTensors,
    get_displacement,
    get_offset_vector,
    strided_index_near_point,
    validate_stride,
)

logger = logging.getLogger(__name__)

MATCH_RADIUS_SQ = 100.0


class KeypointPool:
    """
    Index arena over the score-sorted candidates.

    One backing list holds every candidate; per-part index lists give the
    nearest-candidate view. Removal is a tombstone, so taking a keypoint out
    of its part pool also takes it out of the global order and vice versa.
    """

    def __init__(self, candidates: Iterable[Keypoint], num_parts: int):
        self._keypoints: List[Keypoint] = sorted(candidates, key=lambda kp: kp.score, reverse=True)
        self._alive = [True] * len(self._keypoints)
        self._by_part: List[List[int]] = [[] for _ in range(num_parts)]
        for idx, kp in enumerate(self._keypoints):
            if not 0 <= kp.part_id < num_parts:
                raise DecodeContractError(
                    f"Candidate has part_id {kp.part_id}, topology has {num_parts} parts"
                )
            self._by_part[kp.part_id].append(idx)
        self._cursor = 0
        self._remaining = len(self._keypoints)

    def __len__(self) -> int:
        return self._remaining

    def pop_highest(self) -> Optional[Keypoint]:
        """Remove and return the strongest remaining candidate."""
        while self._cursor < len(self._keypoints):
            idx = self._cursor
            self._cursor += 1
            if self._alive[idx]:
                self._consume(idx)
                return self._keypoints[idx]
        return None

    def take_nearest(self, part_id: int, point: Tuple[float, float], max_sq_dist: float) -> Optional[Keypoint]:
        """
        Remove and return the closest remaining candidate of a part.

        Returns None (and removes nothing) when the pool is empty or the
        closest candidate is farther than sqrt(max_sq_dist).
        """
        best_idx = -1
        best_sq = float("inf")
        for idx in self._by_part[part_id]:
            if not self._alive[idx]:
                continue
            sq = self._keypoints[idx].squared_distance(point)
            if sq < best_sq:
                best_idx = idx
                best_sq = sq

        if best_idx >= 0 and best_sq <= max_sq_dist:
            self._consume(best_idx)
            return self._keypoints[best_idx]
        return None

    def _consume(self, idx: int):
        self._alive[idx] = False
        self._remaining -= 1


def _within_nms_radius(poses: Sequence[Skeleton], sq_nms_radius: float, keypoint: Keypoint) -> bool:
    return any(
        pose[keypoint.part_id].squared_distance(keypoint.position) <= sq_nms_radius
        for pose in poses
    )


def _traverse_to_target(
    edge_id: int,
    source: Keypoint,
    target_id: int,
    tensors: PoseTensors,
    stride: int,
    displacements: np.ndarray,
    pool: KeypointPool,
    match_radius_sq: float,
    refine_steps: int,
) -> Keypoint:
    height, width = tensors.height, tensors.width

    sx, sy = source.grid_index
    dx, dy = get_displacement(displacements, edge_id, sy, sx)
    target_pos = (source.position[0] + dx, source.position[1] + dy)

    for _ in range(refine_steps):
        gx, gy = strided_index_near_point(target_pos, stride, height, width)
        ox, oy = get_offset_vector(tensors.offsets, gy, gx, target_id)
        target_pos = (gx * stride + ox, gy * stride + oy)

    matched = pool.take_nearest(target_id, target_pos, match_radius_sq)
    if matched is not None:
        return matched

    grid_index = strided_index_near_point(target_pos, stride, height, width)
    return Keypoint(target_id, 0.0, target_pos, grid_index)


def _decode_pose(
    root: Keypoint,
    tensors: PoseTensors,
    topology: SkeletonTopology,
    stride: int,
    pool: KeypointPool,
    match_radius_sq: float,
    refine_steps: int,
) -> Skeleton:
    slots: List[Optional[Keypoint]] = [None] * topology.num_parts
    slots[root.part_id] = root

    # Upwards in the tree, following the backward displacements
    for edge_id in topology.backward_order:
        parent, child = topology.edges[edge_id]
        if slots[child] is not None and slots[parent] is None:
            slots[parent] = _traverse_to_target(
                edge_id, slots[child], parent, tensors, stride,
                tensors.displacement_bwd, pool, match_radius_sq, refine_steps,
            )

    # Downwards in the tree, following the forward displacements
    for edge_id in topology.forward_order:
        parent, child = topology.edges[edge_id]
        if slots[parent] is not None and slots[child] is None:
            slots[child] = _traverse_to_target(
                edge_id, slots[parent], child, tensors, stride,
                tensors.displacement_fwd, pool, match_radius_sq, refine_steps,
            )

    missing = [part for part, kp in enumerate(slots) if kp is None]
    if missing:
        raise DecodeContractError(
            f"Parts {missing} are not connected to part {root.part_id}; "
            "topology must be a single tree spanning all parts"
        )
    return Skeleton(tuple(slots))


def decode_multiple_poses(
    candidates: Iterable[Keypoint],
    tensors: PoseTensors,
    topology: SkeletonTopology = POSENET_TOPOLOGY,
    stride: int = 16,
    max_poses: int = 20,
    score_threshold: float = 0.5,
    nms_radius: float = 20,
    match_radius_sq: float = MATCH_RADIUS_SQ,
    refine_steps: int = 1,
) -> List[Skeleton]:
    """
    Assemble complete skeletons from heatmap peaks.

    Args:
        candidates: Keypoints from extract_keypoints (any order)
        tensors: The cycle's heatmap, offsets and displacement tensors
        topology: Part/edge definition the tensors were trained with
        stride: Heatmap cell size in image pixels
        max_poses: Cap on returned skeletons
        score_threshold: Candidates below this never seed or match
        nms_radius: Minimum distance between same-part keypoints of two skeletons
        match_radius_sq: Squared distance within which a traversal adopts a candidate
        refine_steps: Snap-and-offset iterations per traversal step

    Returns:
        Skeletons in creation order, each with one keypoint per part

    Raises:
        DecodeContractError: If tensors, stride or candidates violate the contract
    """
    validate_stride(stride)
    tensors.validate(topology.num_parts, topology.num_edges)
    if max_poses < 0:
        raise DecodeContractError(f"max_poses must be non-negative, got {max_poses}")
    if refine_steps < 1:
        raise DecodeContractError(f"refine_steps must be at least 1, got {refine_steps}")

    # Scores come from float32 heatmaps; compare at that precision
    threshold = np.float32(score_threshold)
    pool = KeypointPool(
        (kp for kp in candidates if np.float32(kp.score) >= threshold),
        topology.num_parts,
    )
    sq_nms_radius = float(nms_radius) * float(nms_radius)

    poses: List[Skeleton] = []
    while len(poses) < max_poses and len(pool) > 0:
        root = pool.pop_highest()
        if _within_nms_radius(poses, sq_nms_radius, root):
            continue
        poses.append(
            _decode_pose(root, tensors, topology, stride, pool, match_radius_sq, refine_steps)
        )

    logger.debug(f"Decoded {len(poses)} poses ({len(pool)} candidates left unused)")
    return poses


class PoseDecoder:
    """
    Extract + decode bound to one topology and one set of decode settings.
    """

    def __init__(self, config: Optional[DecodingConfig] = None, topology: SkeletonTopology = POSENET_TOPOLOGY):
        """
        Args:
            config: DecodingConfig (defaults used when None)
            topology: Skeleton topology the model was trained with
        """
        self.config = config if config is not None else DecodingConfig()
        self.topology = topology

    def __call__(self, tensors: PoseTensors, stride: int) -> List[Skeleton]:
        return self.decode(tensors, stride)

    def decode(self, tensors: PoseTensors, stride: int) -> List[Skeleton]:
        cfg = self.config
        tensors.validate(self.topology.num_parts, self.topology.num_edges)
        candidates = extract_keypoints(
            tensors.heatmap,
            tensors.offsets,
            stride,
            score_threshold=cfg.score_threshold,
            local_radius=cfg.local_maximum_radius,
        )
        return decode_multiple_poses(
            candidates,
            tensors,
            self.topology,
            stride,
            max_poses=cfg.max_poses,
            score_threshold=cfg.score_threshold,
            nms_radius=cfg.nms_radius,
            match_radius_sq=cfg.match_radius_sq,
            refine_steps=cfg.refine_steps,
        )
