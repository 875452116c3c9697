import math
import numpy as np
from typing import Sequence


def quaternion2RotationMatix(qw, qx, qy, qz) -> np.ndarray:
    """
    Convert quaternion to rotation matrix, the quaternion is normalized first
    so that the result is orthonormal even if the stored values drifted.
    :param qw: w part of quaternion
    :param qx: x part of quaternion
    :param qy: y part of quaternion
    :param qz: z part of quaternion
    :return: rotation matrix, np.ndarray[3, 3] float64
    """
    norm = math.sqrt(qw * qw + qx * qx + qy * qy + qz * qz)
    if not math.isfinite(norm) or norm < 1e-12:
        raise ValueError(f"quaternion ({qw}, {qx}, {qy}, {qz}) can not be normalized")
    qw = qw / norm
    qx = qx / norm
    qy = qy / norm
    qz = qz / norm

    return np.array([[1 - 2 * (qy * qy + qz * qz), 2 * (qx * qy - qz * qw), 2 * (qx * qz + qy * qw)],
                     [2 * (qx * qy + qz * qw), 1 - 2 * (qx * qx + qz * qz), 2 * (qy * qz - qx * qw)],
                     [2 * (qx * qz - qy * qw), 2 * (qy * qz + qx * qw), 1 - 2 * (qx * qx + qy * qy)]],
                    dtype=np.float64)


def get_matrix_rt(quaternion: Sequence[float], translation: Sequence[float]) -> np.ndarray:
    """Build a 4x4 homogeneous transform from a (w, x, y, z) quaternion and a translation."""
    qw, qx, qy, qz = quaternion
    matrix_rt = np.eye(4, dtype=np.float64)
    matrix_rt[:3, :3] = quaternion2RotationMatix(qw, qx, qy, qz)
    matrix_rt[:3, 3] = np.asarray(translation, dtype=np.float64)
    return matrix_rt
