import os
import json
import math
import yaml
import numpy as np
from pathlib import Path
from typing import Any, Mapping, Union

from bevperception.src.core.dataclass import RigidTransform
from bevperception.src.core.errors import CalibrationNotFoundError, MalformedCalibrationError
from bevperception.src.utils.math_utils import get_matrix_rt
from bevperception.src.utils.logger import get_logger

logger = get_logger(__name__)

__all__ = ["CalibrationLoader", "get_matrix_rt"]


class CalibrationLoader:
    """
    读取 vehicle -> lidar 的外参标定, 格式如下:

        transform:
          rotation: {w: 1.0, x: 0.0, y: 0.0, z: 0.0}
          translation: {x: 0.0, y: 0.0, z: 0.0}

    四元数先归一化再转旋转矩阵, 任何字段缺失或不是有限数值都直接报错, 不会返回部分结果.
    """

    ROTATION_KEYS = ("w", "x", "y", "z")
    TRANSLATION_KEYS = ("x", "y", "z")

    def __init__(self, source_frame: str = "vehicle", target_frame: str = "lidar"):
        self.source_frame = source_frame
        self.target_frame = target_frame

    def load(self, source: Union[str, Path, Mapping[str, Any]]) -> RigidTransform:
        """
        Args:
            source: yaml/json 文件路径, 或已经解析好的字典
        Returns:
            RigidTransform
        """
        if isinstance(source, Mapping):
            record = source
            origin = "<mapping>"
        else:
            origin = str(source)
            record = self._read_file(origin)

        quaternion, translation = self._parse_record(record, origin)
        try:
            matrix = get_matrix_rt(quaternion, translation)
        except ValueError as e:
            raise MalformedCalibrationError(f"{origin}: {e}") from e

        logger.info(f"Loaded {self.source_frame} -> {self.target_frame} calibration from {origin}")
        logger.debug(f"{self.source_frame} -> {self.target_frame}:\n{matrix}")
        return RigidTransform(matrix=matrix, source_frame=self.source_frame, target_frame=self.target_frame)

    @staticmethod
    def _read_file(filename: str) -> Any:
        if not os.path.isfile(filename):
            raise CalibrationNotFoundError(f"Calibration file not found: {filename}")
        try:
            with open(filename, 'r') as f:
                if filename.endswith('.json'):
                    return json.load(f)
                return yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedCalibrationError(f"Failed to parse calibration file {filename}: {e}") from e

    def _parse_record(self, record: Any, origin: str):
        transform = self._get_section(record, "transform", origin)
        rotation = self._get_section(transform, "rotation", origin, prefix="transform.")
        translation = self._get_section(transform, "translation", origin, prefix="transform.")

        quaternion = [self._get_number(rotation, key, origin, f"transform.rotation.{key}")
                      for key in self.ROTATION_KEYS]
        offset = [self._get_number(translation, key, origin, f"transform.translation.{key}")
                  for key in self.TRANSLATION_KEYS]
        return quaternion, offset

    @staticmethod
    def _get_section(record: Any, key: str, origin: str, prefix: str = "") -> Mapping:
        if not isinstance(record, Mapping):
            raise MalformedCalibrationError(f"{origin}: expected a mapping containing '{prefix}{key}'")
        if key not in record:
            raise MalformedCalibrationError(f"{origin}: missing key '{prefix}{key}'")
        section = record[key]
        if not isinstance(section, Mapping):
            raise MalformedCalibrationError(f"{origin}: '{prefix}{key}' should be a mapping")
        return section

    @staticmethod
    def _get_number(section: Mapping, key: str, origin: str, path: str) -> float:
        if key not in section:
            raise MalformedCalibrationError(f"{origin}: missing key '{path}'")
        value = section[key]
        # yaml parses yes/no/true/false as bool, which is an int subclass
        if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
            raise MalformedCalibrationError(f"{origin}: '{path}' should be a number, but got {value!r}")
        value = float(value)
        if not math.isfinite(value):
            raise MalformedCalibrationError(f"{origin}: '{path}' is not finite")
        return value
