"""
Keypoint schema for the 17-part PoseNet body model.
Maps numeric part ids to semantic body part names and defines the two
edge lists the decoder and the display layer work with.
"""
from enum import Enum
from typing import List, Optional, Tuple


class PosenetKeypoint(Enum):
    """
    PoseNet body format (17 keypoints, COCO ordering).

    Part 0 (NOSE) is the root convention of the traversal tree.
    """

    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 2
    LEFT_EAR = 3
    RIGHT_EAR = 4
    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16


KEYPOINT_COUNT = len(PosenetKeypoint)

_K = PosenetKeypoint

# Parent -> child edges used for multi-pose traversal. The order matters:
# a parent always appears in an earlier edge than any edge leaving its child.
POSENET_BONE_TREE: List[Tuple[int, int]] = [
    (_K.NOSE.value, _K.LEFT_EYE.value),                # 0
    (_K.LEFT_EYE.value, _K.LEFT_EAR.value),            # 1
    (_K.NOSE.value, _K.RIGHT_EYE.value),               # 2
    (_K.RIGHT_EYE.value, _K.RIGHT_EAR.value),          # 3
    (_K.NOSE.value, _K.LEFT_SHOULDER.value),           # 4
    (_K.LEFT_SHOULDER.value, _K.LEFT_ELBOW.value),     # 5
    (_K.LEFT_ELBOW.value, _K.LEFT_WRIST.value),        # 6
    (_K.LEFT_SHOULDER.value, _K.LEFT_HIP.value),       # 7
    (_K.LEFT_HIP.value, _K.LEFT_KNEE.value),           # 8
    (_K.LEFT_KNEE.value, _K.LEFT_ANKLE.value),         # 9
    (_K.NOSE.value, _K.RIGHT_SHOULDER.value),          # 10
    (_K.RIGHT_SHOULDER.value, _K.RIGHT_ELBOW.value),   # 11
    (_K.RIGHT_ELBOW.value, _K.RIGHT_WRIST.value),      # 12
    (_K.RIGHT_SHOULDER.value, _K.RIGHT_HIP.value),     # 13
    (_K.RIGHT_HIP.value, _K.RIGHT_KNEE.value),         # 14
    (_K.RIGHT_KNEE.value, _K.RIGHT_ANKLE.value),       # 15
]

# Skeleton connections for visualization
POSENET_DISPLAY_BONES: List[Tuple[int, int]] = [
    # Head
    (_K.NOSE.value, _K.LEFT_EYE.value),
    (_K.NOSE.value, _K.RIGHT_EYE.value),
    (_K.LEFT_EYE.value, _K.LEFT_EAR.value),
    (_K.RIGHT_EYE.value, _K.RIGHT_EAR.value),
    # Torso
    (_K.LEFT_SHOULDER.value, _K.RIGHT_SHOULDER.value),
    (_K.LEFT_SHOULDER.value, _K.LEFT_HIP.value),
    (_K.RIGHT_SHOULDER.value, _K.RIGHT_HIP.value),
    (_K.LEFT_HIP.value, _K.RIGHT_HIP.value),
    # Arms
    (_K.LEFT_SHOULDER.value, _K.LEFT_ELBOW.value),
    (_K.LEFT_ELBOW.value, _K.LEFT_WRIST.value),
    (_K.RIGHT_SHOULDER.value, _K.RIGHT_ELBOW.value),
    (_K.RIGHT_ELBOW.value, _K.RIGHT_WRIST.value),
    # Legs
    (_K.LEFT_HIP.value, _K.LEFT_KNEE.value),
    (_K.LEFT_KNEE.value, _K.LEFT_ANKLE.value),
    (_K.RIGHT_HIP.value, _K.RIGHT_KNEE.value),
    (_K.RIGHT_KNEE.value, _K.RIGHT_ANKLE.value),
]


def get_keypoint_name(index: int) -> str:
    """Get the body part name for a keypoint index."""
    if 0 <= index < KEYPOINT_COUNT:
        return PosenetKeypoint(index).name
    return f"KEYPOINT_{index}"


def get_keypoint_index(name: str) -> Optional[int]:
    """Get the keypoint index for a body part name, or None if unknown."""
    member = PosenetKeypoint.__members__.get(name.upper())
    return member.value if member is not None else None
