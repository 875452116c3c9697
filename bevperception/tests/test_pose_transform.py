import numpy as np
import pytest
import torch

from bevperception.src.core.dataclass import RigidTransform
from bevperception.src.core.errors import SingularTransformError
from bevperception.src.utils.math_utils import quaternion2RotationMatix, get_matrix_rt
from bevperception.src.utils.pose_transform import homogenize_intrinsics, invert_transform, \
    get_transform_from_image_to_vehicle
from bevperception.src.utils.debug_utils import check_nan_or_inf
from bevperception.tests.conftest import FORWARD_CAMERA_EXTRINSIC, SMALL_INTRINSICS

VEHICLE_TO_LIDAR = get_matrix_rt((0.9990482, 0.0, 0.0, 0.0436194), (0.94, 0.0, 1.84))


def test_quaternion_identity():
    np.testing.assert_allclose(quaternion2RotationMatix(1.0, 0.0, 0.0, 0.0), np.eye(3))


def test_quaternion_zero_norm():
    with pytest.raises(ValueError):
        quaternion2RotationMatix(0.0, 0.0, 0.0, 0.0)


def test_quaternion_is_orthonormal():
    rot = quaternion2RotationMatix(0.3, -0.2, 0.9, 0.1)
    np.testing.assert_allclose(rot @ rot.T, np.eye(3), atol=1e-12)
    assert np.linalg.det(rot) == pytest.approx(1.0)


def test_homogenize_intrinsics():
    k4 = homogenize_intrinsics(SMALL_INTRINSICS)
    np.testing.assert_allclose(k4[:3, :3], SMALL_INTRINSICS)
    np.testing.assert_allclose(k4[3], [0.0, 0.0, 0.0, 1.0])
    np.testing.assert_allclose(k4[:3, 3], [0.0, 0.0, 0.0])


def test_invert_transform():
    inverse = invert_transform(VEHICLE_TO_LIDAR)
    np.testing.assert_allclose(inverse @ VEHICLE_TO_LIDAR, np.eye(4), atol=1e-12)


@pytest.mark.parametrize(
    "matrix",
    [
        np.zeros((4, 4)),
        np.diag([1.0, 1.0, 1e-12, 1.0]),
        np.array([[1.0, 2.0, 0.0, 0.0], [2.0, 4.0, 0.0, 0.0], [0.0, 0.0, 1.0, 0.0], [0.0, 0.0, 0.0, 1.0]]),
        np.full((4, 4), np.nan),
    ],
)
def test_invert_singular_transform(matrix):
    with pytest.raises(SingularTransformError):
        invert_transform(matrix, name="test")


def test_rigid_transform_rejects_wrong_shape():
    with pytest.raises(ValueError):
        RigidTransform(matrix=np.eye(3))


def test_image_to_vehicle_composition():
    img2vehicle = get_transform_from_image_to_vehicle(VEHICLE_TO_LIDAR, FORWARD_CAMERA_EXTRINSIC, SMALL_INTRINSICS)
    lidar2img = np.linalg.inv(VEHICLE_TO_LIDAR) @ FORWARD_CAMERA_EXTRINSIC @ homogenize_intrinsics(SMALL_INTRINSICS)
    np.testing.assert_allclose(img2vehicle @ lidar2img, np.eye(4), atol=1e-9)
    assert img2vehicle.dtype == np.float64


def test_singular_intrinsics():
    with pytest.raises(SingularTransformError):
        get_transform_from_image_to_vehicle(VEHICLE_TO_LIDAR, FORWARD_CAMERA_EXTRINSIC, np.zeros((3, 3)))


def _project(points, vehicle2img):
    projected = np.concatenate([points, np.ones((len(points), 1))], axis=1) @ vehicle2img.T
    return projected[:, :2] / projected[:, 2:3], projected[:, 2]


def _lift(pixels, depths, img2vehicle):
    homogeneous = np.stack([pixels[:, 0] * depths, pixels[:, 1] * depths, depths, np.ones_like(depths)], axis=1)
    points = homogeneous @ img2vehicle.T
    return points[:, :3] / points[:, 3:4]


@pytest.mark.parametrize(
    "point",
    [
        (10.0, 0.0, 0.5),
        (25.0, -3.0, 1.0),
        (5.0, 2.0, -0.3),
    ],
)
def test_round_trip_recovers_point_and_pixel(point):
    img2vehicle = get_transform_from_image_to_vehicle(VEHICLE_TO_LIDAR, FORWARD_CAMERA_EXTRINSIC, SMALL_INTRINSICS)
    vehicle2img = invert_transform(img2vehicle)

    pixels, depths = _project(np.array([point]), vehicle2img)
    recovered = _lift(pixels, depths, img2vehicle)
    np.testing.assert_allclose(recovered[0], point, atol=1e-6)

    pixels_again, _ = _project(recovered, vehicle2img)
    np.testing.assert_allclose(pixels_again, pixels, atol=1e-6)


def test_check_nan_or_inf():
    check_nan_or_inf(torch.zeros(3))
    check_nan_or_inf(np.full(3, np.nan), active=False)
    with pytest.raises(ValueError):
        check_nan_or_inf(np.array([0.0, np.nan]))
    with pytest.raises(ValueError):
        check_nan_or_inf({'k': [torch.tensor([float('inf')])]})
