"""
Tensor boundary for the pose decoder.

All four network outputs are float32 arrays shaped [1, H, W, C]. Doubled
channel tensors (offsets, displacements) store the vertical component in
the first half of the channels and the horizontal component in the second.
"""
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np


class DecodeContractError(ValueError):
    """Raised when decode inputs violate the tensor/topology contract."""


@dataclass(frozen=True)
class PoseTensors:
    """
    The four output tensors of one inference cycle.

    Attributes:
        heatmap: [1, H, W, P] per-part confidence
        offsets: [1, H, W, 2P] sub-pixel offsets (dy block, then dx block)
        displacement_fwd: [1, H, W, 2E] parent -> child displacements
        displacement_bwd: [1, H, W, 2E] child -> parent displacements
    """

    heatmap: np.ndarray
    offsets: np.ndarray
    displacement_fwd: np.ndarray
    displacement_bwd: np.ndarray

    @property
    def height(self) -> int:
        return int(self.heatmap.shape[1])

    @property
    def width(self) -> int:
        return int(self.heatmap.shape[2])

    @property
    def num_parts(self) -> int:
        return int(self.heatmap.shape[3])

    @property
    def num_edges(self) -> int:
        return int(self.displacement_fwd.shape[3]) // 2

    def validate(self, num_parts: int, num_edges: int):
        """
        Check shapes against each other and against the topology.

        Raises:
            DecodeContractError: On any mismatch
        """
        named = (
            ("heatmap", self.heatmap),
            ("offsets", self.offsets),
            ("displacement_fwd", self.displacement_fwd),
            ("displacement_bwd", self.displacement_bwd),
        )
        for name, tensor in named:
            shape = getattr(tensor, "shape", None)
            if shape is None or len(shape) != 4:
                raise DecodeContractError(f"{name} must be a 4-D [1, H, W, C] array, got shape {shape}")
            if shape[0] != 1:
                raise DecodeContractError(f"{name} batch size must be 1, got {shape[0]}")

        spatial = self.heatmap.shape[1:3]
        for name, tensor in named[1:]:
            if tensor.shape[1:3] != spatial:
                raise DecodeContractError(
                    f"{name} spatial size {tuple(tensor.shape[1:3])} doesn't match "
                    f"heatmap {tuple(spatial)}"
                )

        if self.heatmap.shape[3] != num_parts:
            raise DecodeContractError(
                f"heatmap has {self.heatmap.shape[3]} channels, topology expects {num_parts} parts"
            )
        if self.offsets.shape[3] != 2 * num_parts:
            raise DecodeContractError(
                f"offsets has {self.offsets.shape[3]} channels, expected {2 * num_parts}"
            )
        for name, tensor in named[2:]:
            if tensor.shape[3] != 2 * num_edges:
                raise DecodeContractError(
                    f"{name} has {tensor.shape[3]} channels, expected {2 * num_edges} "
                    f"for {num_edges} edges"
                )


def validate_stride(stride: int):
    if isinstance(stride, bool) or not isinstance(stride, (int, np.integer)):
        raise DecodeContractError(f"stride must be an integer, got {stride!r}")
    if stride <= 0:
        raise DecodeContractError(f"stride must be positive, got {stride}")


def compute_stride(input_size: int, heatmap_size: int, multiple: int = 8) -> int:
    """
    Derive the output stride from the input and heatmap sizes.

    The network's output grid samples input pixels 0, s, 2s, ... so
    (input - 1) / (heatmap - 1) is the stride, rounded down to a multiple of
    the architecture's stride step.
    """
    if heatmap_size < 2:
        raise DecodeContractError(f"heatmap size must be at least 2 to derive a stride, got {heatmap_size}")
    stride = (int(input_size) - 1) // (int(heatmap_size) - 1)
    if multiple > 1:
        stride -= stride % multiple
    if stride <= 0:
        raise DecodeContractError(
            f"Cannot derive a stride from input size {input_size} and heatmap size {heatmap_size}"
        )
    return stride


def get_offset_vector(offsets: np.ndarray, y: int, x: int, part_id: int) -> Tuple[float, float]:
    """Return the (dx, dy) offset for a part at heatmap cell (y, x)."""
    num_parts = offsets.shape[3] >> 1
    return float(offsets[0, y, x, part_id + num_parts]), float(offsets[0, y, x, part_id])


def get_displacement(displacements: np.ndarray, edge_id: int, y: int, x: int) -> Tuple[float, float]:
    """Return the (dx, dy) displacement along an edge at heatmap cell (y, x)."""
    num_edges = displacements.shape[3] >> 1
    return float(displacements[0, y, x, edge_id + num_edges]), float(displacements[0, y, x, edge_id])


def strided_index_near_point(
    point: Tuple[float, float], stride: int, height: int, width: int
) -> Tuple[int, int]:
    """
    Snap an image-space point to the nearest heatmap cell, clamped to bounds.

    Returns:
        (x, y) grid index
    """
    px, py = point
    if not (math.isfinite(px) and math.isfinite(py)):
        raise DecodeContractError(f"Cannot snap non-finite point {point} to the heatmap grid")
    gx = min(max(int(round(px / stride)), 0), width - 1)
    gy = min(max(int(round(py / stride)), 0), height - 1)
    return gx, gy


def image_coords(grid_index: Tuple[int, int], part_id: int, stride: int, offsets: np.ndarray) -> Tuple[float, float]:
    """Sub-pixel image position of a part at a heatmap cell."""
    gx, gy = grid_index
    dx, dy = get_offset_vector(offsets, gy, gx, part_id)
    return gx * stride + dx, gy * stride + dy
