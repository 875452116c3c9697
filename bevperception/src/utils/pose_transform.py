import numpy as np
from bevperception.src.core.errors import SingularTransformError

# |det| below this is treated as a singular matrix
SINGULAR_EPS = 1e-9


def homogenize_intrinsics(intrinsics: np.ndarray) -> np.ndarray:
    """
    Pad a 3x3 camera matrix into a 4x4 one (identity extended).
    Args:
        intrinsics: np.ndarray[3, 3]
    Returns:
        np.ndarray[4, 4] float64
    """
    intrinsics = np.asarray(intrinsics, dtype=np.float64)
    if intrinsics.shape != (3, 3):
        raise ValueError(f"intrinsics should be 3x3, but got {intrinsics.shape}")
    intrinsics_4x4 = np.eye(4, dtype=np.float64)
    intrinsics_4x4[:3, :3] = intrinsics
    return intrinsics_4x4


def invert_transform(matrix: np.ndarray, name: str = "matrix") -> np.ndarray:
    """
    Invert a square matrix, refusing singular ones instead of producing Inf/NaN.
    Args:
        matrix: np.ndarray[4, 4]
        name: used in the error message
    Returns:
        np.ndarray[4, 4] float64
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if not np.isfinite(matrix).all():
        raise SingularTransformError(f"{name} contains NaN or Inf values")
    det = np.linalg.det(matrix)
    if not np.isfinite(det) or abs(det) < SINGULAR_EPS:
        raise SingularTransformError(f"{name} is singular (det={det:.3e})")
    try:
        inverse = np.linalg.inv(matrix)
    except np.linalg.LinAlgError as e:
        raise SingularTransformError(f"{name} can not be inverted: {e}") from e
    if not np.isfinite(inverse).all():
        raise SingularTransformError(f"inverse of {name} contains NaN or Inf values")
    return inverse


def get_transform_from_image_to_vehicle(
    vehicle_to_lidar: np.ndarray,
    vehicle_to_camera: np.ndarray,
    intrinsics: np.ndarray
) -> np.ndarray:
    """
    Get the projection from image pixels to the vehicle frame consumed by the network.
        lidar2img = inv(vehicle_to_lidar) * vehicle_to_camera * homogenize(intrinsics)
        img2vehicle = inv(lidar2img)
    Args:
        vehicle_to_lidar: np.ndarray[4, 4], fixed calibration
        vehicle_to_camera: np.ndarray[4, 4], per frame extrinsic
        intrinsics: np.ndarray[3, 3], per frame camera matrix
    Returns:
        img2vehicle: np.ndarray[4, 4] float64
    """
    lidar2img = (invert_transform(vehicle_to_lidar, "vehicle_to_lidar")
                 @ np.asarray(vehicle_to_camera, dtype=np.float64)
                 @ homogenize_intrinsics(intrinsics))
    return invert_transform(lidar2img, "lidar_to_image")
