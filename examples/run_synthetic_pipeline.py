"""
Drive the PoseNet pipeline on synthetic model outputs.

A thread pool stands in for the accelerator: each frame's "inference"
returns tensors encoding people walking across the image, and the
controller pipelines decoding against it exactly as a camera loop would.
"""
import argparse
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from pose_pipeline.config import load_config
from pose_pipeline.decoding.tensors import PoseTensors
from pose_pipeline.models.topology import POSENET_TOPOLOGY
from pose_pipeline.predictors import FutureExecution, PosenetBackend
from pose_pipeline.scheduling import InferenceScheduler, PredictorController
from pose_pipeline.utils import configure_logging

logger = logging.getLogger(__name__)

INPUT_SIZE = 257
GRID = 17
STRIDE = 16

# Cell (x, y) of each part relative to a person's top-left cell
LAYOUT = [
    (2, 0), (3, 0), (1, 0), (4, 1), (0, 1), (3, 2), (1, 2), (4, 3), (0, 3),
    (4, 4), (0, 4), (3, 4), (1, 4), (3, 5), (1, 5), (3, 6), (1, 6),
]


def synthetic_outputs(frame_index, num_people, config):
    """Model outputs (logit heatmap) for people shifted one cell per frame."""
    P, E = POSENET_TOPOLOGY.num_parts, POSENET_TOPOLOGY.num_edges
    heatmap = np.full((1, GRID, GRID, P), -8.0, dtype=np.float32)
    offsets = np.zeros((1, GRID, GRID, 2 * P), dtype=np.float32)
    fwd = np.zeros((1, GRID, GRID, 2 * E), dtype=np.float32)
    bwd = np.zeros((1, GRID, GRID, 2 * E), dtype=np.float32)

    for person in range(num_people):
        ox = (frame_index + 6 * person) % (GRID - 5)
        oy = (8 * person) % (GRID - 7)
        cells = [(ox + x, oy + y) for x, y in LAYOUT]
        for part, (x, y) in enumerate(cells):
            heatmap[0, y, x, part] = 3.0 - 0.5 * person
        for edge_id, (parent, child) in enumerate(POSENET_TOPOLOGY.edges):
            (px, py), (cx, cy) = cells[parent], cells[child]
            fwd[0, py, px, edge_id] = (cy - py) * STRIDE
            fwd[0, py, px, edge_id + E] = (cx - px) * STRIDE
            bwd[0, cy, cx, edge_id] = (py - cy) * STRIDE
            bwd[0, cy, cx, edge_id + E] = (px - cx) * STRIDE

    tensors = PoseTensors(heatmap, offsets, fwd, bwd)
    names = config.model_outputs
    return {
        names.heatmap: tensors.heatmap,
        names.offsets: tensors.offsets,
        names.displacement_fwd: tensors.displacement_fwd,
        names.displacement_bwd: tensors.displacement_bwd,
    }


def main():
    parser = argparse.ArgumentParser(description='Run the pose pipeline on synthetic tensors')
    parser.add_argument('--config', default=None, help='Path to a pipeline config YAML')
    parser.add_argument('--frames', type=int, default=10, help='Number of frames to simulate')
    parser.add_argument('--people', type=int, default=2, help='People per frame')
    parser.add_argument('--output', default=None, help='Optional JSON file for decoded skeletons')
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config.logging)

    device = ThreadPoolExecutor(max_workers=1)
    frame_counter = {"index": 0}

    def run_model(batch):
        index = frame_counter["index"]
        frame_counter["index"] += 1
        return FutureExecution(device.submit(synthetic_outputs, index, args.people, config))

    backend = PosenetBackend(run_model, config)
    controller = PredictorController()
    controller.register(InferenceScheduler.from_config(backend, config.scheduler))

    frame = np.zeros((INPUT_SIZE, INPUT_SIZE, 3), dtype=np.uint8)
    history = []
    try:
        for frame_time in range(args.frames):
            controller.tick(frame, float(frame_time))
            # Let the in-flight cycle finish before the next camera frame
            scheduler = controller.get("posenet")
            while not scheduler.is_ready():
                controller.tick(frame, float(frame_time))
                scheduler.wait_ready(0.005)

            result = scheduler.get_last_result()
            logger.info(f"Frame {frame_time}: {len(result.results)} poses (cycle {result.cycle})")
            for i, pose in enumerate(result.results):
                logger.info(f"  pose {i}: score={pose.score:.2f} at ({pose.position[0]:.0f}, {pose.position[1]:.0f})")
            history.append({
                "frame_time": frame_time,
                "poses": [pose.to_dict() for pose in result.results],
            })
            time.sleep(0.01)
    finally:
        controller.shutdown()
        device.shutdown()

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(history, f, indent=2)
        print(f"✓ Wrote {len(history)} frames to {args.output}")


if __name__ == "__main__":
    main()
