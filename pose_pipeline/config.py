"""
Pipeline configuration loaded from YAML.

Resolution order for the config file: explicit path, then the
POSE_PIPELINE_CONFIG environment variable, then the packaged config.yaml.
"""
import logging
import numbers
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "POSE_PIPELINE_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def _as_int(name: str, value: Any) -> int:
    """Accept ints and integral floats (YAML `16.0`); reject everything else."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class DecodingConfig:
    """Settings for keypoint extraction and multi-pose decoding."""

    score_threshold: float = 0.5
    local_maximum_radius: int = 1
    nms_radius: int = 20
    max_poses: int = 20
    stride: Optional[int] = None
    stride_multiple: int = 8
    match_radius_sq: float = 100.0
    refine_steps: int = 1

    def __post_init__(self):
        for name in ("local_maximum_radius", "nms_radius", "max_poses", "stride_multiple", "refine_steps"):
            object.__setattr__(self, name, _as_int(name, getattr(self, name)))
        if self.stride is not None:
            object.__setattr__(self, "stride", _as_int("stride", self.stride))

        if not 0.0 <= self.score_threshold <= 1.0:
            raise ValueError(f"score_threshold must be in [0, 1], got {self.score_threshold}")
        if self.local_maximum_radius < 0:
            raise ValueError(f"local_maximum_radius must be non-negative, got {self.local_maximum_radius}")
        if self.nms_radius < 0:
            raise ValueError(f"nms_radius must be non-negative, got {self.nms_radius}")
        if self.max_poses < 1:
            raise ValueError(f"max_poses must be at least 1, got {self.max_poses}")
        if self.stride is not None and self.stride <= 0:
            raise ValueError(f"stride must be positive, got {self.stride}")
        if self.stride_multiple < 1:
            raise ValueError(f"stride_multiple must be at least 1, got {self.stride_multiple}")
        if self.match_radius_sq < 0:
            raise ValueError(f"match_radius_sq must be non-negative, got {self.match_radius_sq}")
        if self.refine_steps < 1:
            raise ValueError(f"refine_steps must be at least 1, got {self.refine_steps}")


@dataclass(frozen=True)
class ModelOutputsConfig:
    """Names of the model's output tensors."""

    heatmap: str = "heatmap"
    offsets: str = "offset_2"
    displacement_fwd: str = "displacement_fwd_2"
    displacement_bwd: str = "displacement_bwd_2"
    apply_sigmoid: bool = True


@dataclass(frozen=True)
class SchedulerConfig:
    background: bool = True
    worker_join_timeout: Optional[float] = None

    def __post_init__(self):
        if self.worker_join_timeout is not None and self.worker_join_timeout <= 0:
            raise ValueError(f"worker_join_timeout must be positive, got {self.worker_join_timeout}")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(message)s"
    datefmt: str = "%H:%M:%S"


@dataclass(frozen=True)
class PipelineConfig:
    decoding: DecodingConfig = field(default_factory=DecodingConfig)
    model_outputs: ModelOutputsConfig = field(default_factory=ModelOutputsConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = {
    "decoding": DecodingConfig,
    "model_outputs": ModelOutputsConfig,
    "scheduler": SchedulerConfig,
    "logging": LoggingConfig,
}


def _build_section(name: str, raw: Any):
    cls = _SECTIONS[name]
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"Config section '{name}' must be a mapping, got {type(raw).__name__}")

    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning(f"Ignoring unknown keys in config section '{name}': {unknown}")
    return cls(**{k: v for k, v in raw.items() if k in known})


def config_from_dict(raw: Dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from a parsed YAML document."""
    if raw is None:
        return PipelineConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Config document must be a mapping, got {type(raw).__name__}")

    unknown = sorted(set(raw) - set(_SECTIONS))
    if unknown:
        logger.warning(f"Ignoring unknown config sections: {unknown}")
    return PipelineConfig(**{name: _build_section(name, raw.get(name)) for name in _SECTIONS})


def load_config(config_path=None) -> PipelineConfig:
    """
    Load the pipeline configuration.

    Args:
        config_path: YAML file to read; see module docstring for fallbacks

    Returns:
        PipelineConfig. A missing file yields the built-in defaults.
    """
    if config_path is None:
        config_path = os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return PipelineConfig()

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    logger.debug(f"Loaded config from {config_path}")
    return config_from_dict(raw)
