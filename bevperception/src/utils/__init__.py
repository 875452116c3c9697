from .math_utils import quaternion2RotationMatix, get_matrix_rt
from .pose_transform import homogenize_intrinsics, invert_transform, get_transform_from_image_to_vehicle
from .debug_utils import check_nan_or_inf
from .latency_utils import Timer
from .logger import get_logger, setup_logging

math_utils_modules = ["quaternion2RotationMatix", "get_matrix_rt"]
pose_transform_modules = ["homogenize_intrinsics", "invert_transform", "get_transform_from_image_to_vehicle"]
debug_utils_modules = ["check_nan_or_inf"]
latency_utils_modules = ["Timer"]
logger_modules = ["get_logger", "setup_logging"]

__all__ = math_utils_modules + pose_transform_modules + debug_utils_modules + latency_utils_modules + logger_modules
