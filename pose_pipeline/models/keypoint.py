"""
Core data structures for decoded poses.
Keypoints and skeletons are immutable once created so they can be handed
from the decode worker to the frame loop without copying.
"""
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .keypoint_schema import POSENET_DISPLAY_BONES, get_keypoint_name


@dataclass(frozen=True)
class Keypoint:
    """
    A single detected (or synthesized) body part.

    Attributes:
        part_id: Index of the body part in the topology.
        score: Heatmap confidence; exactly 0.0 for synthesized keypoints.
        position: Image-space (x, y) in pixels, sub-pixel precision.
        grid_index: (x, y) heatmap cell the keypoint originates from.
    """

    part_id: int
    score: float
    position: Tuple[float, float]
    grid_index: Tuple[int, int]

    @property
    def x(self) -> float:
        return self.position[0]

    @property
    def y(self) -> float:
        return self.position[1]

    @property
    def is_synthesized(self) -> bool:
        """True when no extracted candidate backed this keypoint."""
        return self.score == 0.0

    def squared_distance(self, point: Tuple[float, float]) -> float:
        dx = self.position[0] - point[0]
        dy = self.position[1] - point[1]
        return dx * dx + dy * dy

    def to_dict(self) -> dict:
        return {
            "part_id": self.part_id,
            "name": get_keypoint_name(self.part_id),
            "score": self.score,
            "x": self.position[0],
            "y": self.position[1],
            "grid_x": self.grid_index[0],
            "grid_y": self.grid_index[1],
        }


@dataclass(frozen=True)
class Skeleton:
    """
    All keypoints of one detected person, one slot per part id.

    The body-level position and score are those of part 0, the root
    convention of the topology.
    """

    keypoints: Tuple[Keypoint, ...]

    def __post_init__(self):
        for slot, kp in enumerate(self.keypoints):
            if kp.part_id != slot:
                raise ValueError(
                    f"Keypoint in slot {slot} has part_id {kp.part_id}; "
                    "skeleton slots must be ordered by part id"
                )

    def __len__(self) -> int:
        return len(self.keypoints)

    def __getitem__(self, part_id: int) -> Keypoint:
        return self.keypoints[part_id]

    def __iter__(self) -> Iterator[Keypoint]:
        return iter(self.keypoints)

    @property
    def position(self) -> Tuple[float, float]:
        return self.keypoints[0].position

    @property
    def score(self) -> float:
        return self.keypoints[0].score

    @property
    def num_matched(self) -> int:
        """Number of slots backed by a real heatmap peak."""
        return sum(1 for kp in self.keypoints if not kp.is_synthesized)

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Returns:
            positions: (K, 2) float32 array of (x, y)
            scores: (K,) float32 array
        """
        positions = np.array([kp.position for kp in self.keypoints], dtype=np.float32).reshape(-1, 2)
        scores = np.array([kp.score for kp in self.keypoints], dtype=np.float32)
        return positions, scores

    def visible_bones(
        self,
        min_confidence: float = 0.7,
        bones: Optional[Sequence[Tuple[int, int]]] = None,
    ) -> List[Tuple[Keypoint, Keypoint]]:
        """
        Get the bone segments whose both endpoints meet a confidence level.

        Args:
            min_confidence: Minimum score required at both ends
            bones: Part-id pairs to consider (defaults to the display bones)

        Returns:
            List of (keypoint, keypoint) pairs, in bone order
        """
        if bones is None:
            bones = POSENET_DISPLAY_BONES
        visible = []
        for a, b in bones:
            kp_a, kp_b = self.keypoints[a], self.keypoints[b]
            if kp_a.score >= min_confidence and kp_b.score >= min_confidence:
                visible.append((kp_a, kp_b))
        return visible

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "x": self.position[0],
            "y": self.position[1],
            "keypoints": [kp.to_dict() for kp in self.keypoints],
        }
