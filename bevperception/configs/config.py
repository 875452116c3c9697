from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any, Sequence, Tuple, Union
from enum import Enum
import json
import argparse
from pathlib import Path
from bevperception.src.core.config import Config as FileConfig
from bevperception.src.core.dataclass import SourceCameraId


class ConfigBase:
    def to_dict(self) -> Dict[str, Any]:
        """Recursive conversion to dictionary"""
        return asdict(self)


@dataclass
class PreprocessConfig(ConfigBase):
    """Image and projection preprocessing configuration"""
    camera_ids: List[str] = field(default_factory=lambda: [c.name for c in SourceCameraId])
    image_hw: Optional[Tuple[int, int]] = (900, 1600)     # native resolution of every camera, None accepts any size
    resize_hw: Tuple[int, int] = (450, 800)
    crop_rows: Tuple[int, int] = (130, 450)     # [start, end) of the resized image
    crop_cols: Tuple[int, int] = (0, 800)
    mean: Tuple[float, float, float] = (103.530, 116.280, 123.675)
    std: Tuple[float, float, float] = (57.375, 57.120, 58.395)
    scale: float = 1.0
    num_workers: int = 1                        # > 1 processes cameras in a thread pool
    check_abnormal: bool = False                # NaN / Inf guard on the packed tensors

    def __post_init__(self):
        self.camera_ids = [c.name if isinstance(c, SourceCameraId) else c for c in self.camera_ids]
        self.image_hw = tuple(self.image_hw) if self.image_hw is not None else None
        self.resize_hw = tuple(self.resize_hw)
        self.crop_rows = tuple(self.crop_rows)
        self.crop_cols = tuple(self.crop_cols)
        self.mean = tuple(self.mean)
        self.std = tuple(self.std)

        if len(self.camera_ids) == 0:
            raise ValueError("camera_ids must not be empty")
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError(f"mean and std need 3 channels, but got {len(self.mean)} and {len(self.std)}")
        if not (0 <= self.crop_rows[0] < self.crop_rows[1] <= self.resize_hw[0]):
            raise ValueError(f"crop_rows {self.crop_rows} is outside the resized height {self.resize_hw[0]}")
        if not (0 <= self.crop_cols[0] < self.crop_cols[1] <= self.resize_hw[1]):
            raise ValueError(f"crop_cols {self.crop_cols} is outside the resized width {self.resize_hw[1]}")

    @property
    def crop_hw(self) -> Tuple[int, int]:
        return self.crop_rows[1] - self.crop_rows[0], self.crop_cols[1] - self.crop_cols[0]


@dataclass
class RuntimeConfig(ConfigBase):
    """Inference engine configuration"""
    engine: Dict[str, Any] = field(default_factory=lambda: {
        'type': 'OnnxRuntimeEngine',
        'model_path': 'data/petr_v1/petr_inference.onnx',
        'device': 'cpu',
        'gpu_id': 0,
        'use_trt': False,
        'trt_precision': 0,         # 0: fp32, 1: fp16
        'trt_use_static': False,
        'trt_static_dir': 'data/petr_v1/trt_cache',
    })
    batch_dim: bool = True          # inputs carry a leading batch dimension of 1

    def __post_init__(self):
        self.engine = dict(self.engine)
        if 'type' not in self.engine:
            raise ValueError("runtime.engine needs a 'type'")


@dataclass
class PostprocessConfig(ConfigBase):
    """Detection postprocessing configuration"""
    score_threshold: float = 0.3


@dataclass
class LoggingConfig(ConfigBase):
    """Logging configuration"""
    level: str = 'INFO'
    log_dir: Optional[str] = None


@dataclass
class BEVDetectorConfig(ConfigBase):
    """Collection of all configurations"""
    calibration_file: str = 'data/calibration/lidar_extrinsics.yaml'   # vehicle -> lidar
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    postprocess: PostprocessConfig = field(default_factory=PostprocessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def images_shape(self) -> Tuple[int, ...]:
        shape = (len(self.preprocess.camera_ids), 3) + self.preprocess.crop_hw
        return (1,) + shape if self.runtime.batch_dim else shape

    @property
    def k_shape(self) -> Tuple[int, ...]:
        shape = (len(self.preprocess.camera_ids), 4, 4)
        return (1,) + shape if self.runtime.batch_dim else shape

    @classmethod
    def from_dict(cls, data: Dict) -> 'BEVDetectorConfig':
        """Create configuration object from dictionary"""
        data = dict(data)
        unknown = set(data.keys()) - {'calibration_file', 'preprocess', 'runtime', 'postprocess', 'logging'}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")
        kwargs = {}
        if 'calibration_file' in data:
            kwargs['calibration_file'] = data['calibration_file']
        return cls(
            preprocess=PreprocessConfig(**(data.get('preprocess') or {})),
            runtime=RuntimeConfig(**(data.get('runtime') or {})),
            postprocess=PostprocessConfig(**(data.get('postprocess') or {})),
            logging=LoggingConfig(**(data.get('logging') or {})),
            **kwargs
        )

    def save(self, path: Union[str, Path], format: str = 'json'):
        """Save configuration file"""
        path = Path(path)
        suffixes = {'json': ('.json',), 'yaml': ('.yaml', '.yml')}
        if format not in suffixes:
            raise ValueError(f"Unsupported format: {format}")
        if path.suffix.lower() not in suffixes[format]:
            raise ValueError(f"{path} does not look like a {format} file")
        data = json.loads(json.dumps(self.to_dict(), default=self._serialize))
        FileConfig(data).save_to_file(str(path))

    @staticmethod
    def _serialize(obj):
        """Custom serialization handling"""
        if isinstance(obj, Enum):
            return obj.name
        if isinstance(obj, Path):
            return str(obj)
        raise TypeError(f"Object of type {type(obj)} is not serializable")

    @classmethod
    def load(cls, path: Union[str, Path, Sequence[Union[str, Path]]],
             overrides: Optional[List[str]] = None) -> 'BEVDetectorConfig':
        """Load configuration from .py / .yaml / .json file(s), later files win, then apply key=value overrides"""
        paths = [path] if isinstance(path, (str, Path)) else list(path)
        cfg = FileConfig.from_files([str(p) for p in paths])
        cfg.merge_overrides(overrides)
        return cls.from_dict(cfg.to_dict())


def get_config(args: argparse.Namespace) -> BEVDetectorConfig:
    overrides = []
    if getattr(args, 'config_override', None):
        for override in args.config_override:
            # nargs='+' together with action='append' gives a list of lists
            overrides.extend(override if isinstance(override, (list, tuple)) else [override])

    if getattr(args, 'config_file', None):
        return BEVDetectorConfig.load(args.config_file, overrides)

    cfg = FileConfig(json.loads(json.dumps(BEVDetectorConfig().to_dict())))
    cfg.merge_overrides(overrides)
    return BEVDetectorConfig.from_dict(cfg.to_dict())
