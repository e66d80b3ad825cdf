"""
Skeleton topology: the static directed forest the decoder traverses.
"""
import json
import logging
import os
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .keypoint_schema import POSENET_BONE_TREE, POSENET_DISPLAY_BONES, PosenetKeypoint

logger = logging.getLogger(__name__)


class SkeletonTopology:
    """
    Read-only part/edge definition shared by all decode calls.
    Separates TOPOLOGY from per-frame tensors: nothing here changes after init.
    """

    def __init__(
        self,
        part_names: Sequence[str],
        edges: Sequence[Tuple[int, int]],
        display_bones: Optional[Sequence[Tuple[int, int]]] = None,
    ):
        """
        Args:
            part_names: One name per part id, in id order
            edges: (parent_id, child_id) pairs in forward traversal order
            display_bones: Optional part-id pairs used for drawing; defaults to edges
        """
        self.num_parts = len(part_names)
        self.part_names: Tuple[str, ...] = tuple(part_names)
        self.name_to_idx: Dict[str, int] = {name: i for i, name in enumerate(self.part_names)}

        parent_of: Dict[int, int] = {}
        checked: List[Tuple[int, int]] = []
        for parent, child in edges:
            parent, child = int(parent), int(child)
            for part in (parent, child):
                if not 0 <= part < self.num_parts:
                    raise ValueError(f"Edge ({parent}, {child}) references unknown part id {part}")
            if parent == child:
                raise ValueError(f"Edge ({parent}, {child}) is a self-loop")
            if child in parent_of:
                raise ValueError(
                    f"Part {child} has two parents ({parent_of[child]} and {parent}); "
                    "topology must be a forest"
                )
            parent_of[child] = parent
            checked.append((parent, child))

        self._check_acyclic(parent_of)

        # A parent must be reached before any edge leaves it.
        reached = set()
        for parent, child in checked:
            if parent in parent_of and parent not in reached:
                raise ValueError(
                    f"Edge ({parent}, {child}) appears before the edge that reaches part {parent}"
                )
            reached.add(child)

        self.edges: Tuple[Tuple[int, int], ...] = tuple(checked)
        self.num_edges = len(self.edges)

        # EDGE INDEX -> Shape: (2, Num_Edges)
        if self.edges:
            self.edges_index = np.array(self.edges, dtype=np.int32).T
        else:
            self.edges_index = np.zeros((2, 0), dtype=np.int32)
        self.edges_index.setflags(write=False)

        self.forward_order: Tuple[int, ...] = tuple(range(self.num_edges))
        self.backward_order: Tuple[int, ...] = tuple(reversed(self.forward_order))

        bones = self.edges if display_bones is None else display_bones
        self.display_bones: Tuple[Tuple[int, int], ...] = tuple((int(a), int(b)) for a, b in bones)

    @staticmethod
    def _check_acyclic(parent_of: Dict[int, int]):
        for start in parent_of:
            seen = {start}
            node = start
            while node in parent_of:
                node = parent_of[node]
                if node in seen:
                    raise ValueError(f"Topology contains a cycle through part {start}")
                seen.add(node)

    @classmethod
    def from_names(
        cls,
        part_names: Sequence[str],
        bone_names: Sequence[Tuple[str, str]],
        display_bones: Optional[Sequence[Tuple[str, str]]] = None,
    ) -> "SkeletonTopology":
        """Build a topology from (parent_name, child_name) string tuples."""
        name_to_idx = {name: i for i, name in enumerate(part_names)}

        def to_ids(pairs):
            ids = []
            for parent_name, child_name in pairs:
                if parent_name not in name_to_idx or child_name not in name_to_idx:
                    raise ValueError(f"Part names not found: {parent_name}, {child_name}")
                ids.append((name_to_idx[parent_name], name_to_idx[child_name]))
            return ids

        display = to_ids(display_bones) if display_bones is not None else None
        return cls(part_names, to_ids(bone_names), display)

    def edge(self, edge_id: int) -> Tuple[int, int]:
        return self.edges[edge_id]

    def __eq__(self, other):
        if not isinstance(other, SkeletonTopology):
            return NotImplemented
        return (
            self.part_names == other.part_names
            and self.edges == other.edges
            and self.display_bones == other.display_bones
        )

    def __hash__(self):
        return hash((self.part_names, self.edges, self.display_bones))

    def __repr__(self):
        return f"SkeletonTopology(parts={self.num_parts}, edges={self.num_edges})"


POSENET_TOPOLOGY = SkeletonTopology(
    [kp.name.lower() for kp in PosenetKeypoint],
    POSENET_BONE_TREE,
    POSENET_DISPLAY_BONES,
)


class TopologyRegistry:
    """
    Central store for skeleton topologies.
    Loads/Saves topology definitions to JSON.
    """

    def __init__(self, include_defaults: bool = True):
        self._registry: Dict[str, SkeletonTopology] = {}
        if include_defaults:
            self.register("posenet", POSENET_TOPOLOGY)

    def __contains__(self, name: str) -> bool:
        return name in self._registry

    def names(self) -> List[str]:
        return sorted(self._registry)

    def register(self, name: str, topology: SkeletonTopology):
        """Register a topology in memory under the given name."""
        self._registry[name] = topology

    def get(self, name: str) -> SkeletonTopology:
        if name not in self._registry:
            raise ValueError(f"Topology '{name}' not found in registry.")
        return self._registry[name]

    def save_to_json(self, name: str, file_path: str):
        """Exports a registered topology to a JSON file"""
        topology = self.get(name)
        data = {
            "name": name,
            "parts": list(topology.part_names),
            # JSON doesn't support tuples, convert to lists
            "edges": [list(e) for e in topology.edges],
            "display_bones": [list(b) for b in topology.display_bones],
        }

        with open(file_path, "w") as f:
            json.dump(data, f, indent=4)
        logger.info(f"Saved topology '{name}' to {file_path}")

    def load_from_json(self, file_path: str) -> str:
        """Loads a JSON file and registers it; returns the registered name."""
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")

        with open(file_path, "r") as f:
            data = json.load(f)

        name = data.get("name", "unknown")
        edges = [tuple(e) for e in data["edges"]]
        display = data.get("display_bones")
        display_bones = [tuple(b) for b in display] if display is not None else None

        self.register(name, SkeletonTopology(data["parts"], edges, display_bones))
        logger.info(f"Loaded topology '{name}' from {file_path}")
        return name
