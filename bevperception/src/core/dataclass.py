import numpy as np
import torch
from enum import IntEnum
from typing import Dict, List, Optional
from dataclasses import dataclass, field


# CAMERA RELATED
class SourceCameraId(IntEnum):
    """Surround cameras, in the slot order the network was trained with."""
    CAM_FRONT = 0
    CAM_FRONT_RIGHT = 1
    CAM_FRONT_LEFT = 2
    CAM_BACK = 3
    CAM_BACK_LEFT = 4
    CAM_BACK_RIGHT = 5

    def __str__(self):
        return self.name


class ColorOrder(IntEnum):
    RGB = 0
    BGR = 1

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class RigidTransform:
    """4x4 homogeneous transform taking points of ``source_frame`` into ``target_frame``."""
    matrix: np.ndarray
    source_frame: str = ''
    target_frame: str = ''

    def __post_init__(self):
        matrix = np.array(self.matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"RigidTransform expects a 4x4 matrix, but got {matrix.shape}")
        matrix.setflags(write=False)
        object.__setattr__(self, 'matrix', matrix)

    @property
    def rotation(self) -> np.ndarray:
        return self.matrix[:3, :3]

    @property
    def translation(self) -> np.ndarray:
        return self.matrix[:3, 3]


@dataclass
class CameraFrame:
    """One camera view of a synchronized frame set.

    image: [H, W, 3] uint8 at the camera's native resolution
    intrinsics: [3, 3] camera frame -> pixel
    extrinsic: [4, 4] vehicle (imu) frame -> camera frame
    """
    camera_id: SourceCameraId
    image: Optional[np.ndarray]
    intrinsics: np.ndarray
    extrinsic: np.ndarray
    color_order: ColorOrder = ColorOrder.BGR
    timestamp: float = 0.0


@dataclass
class PreparedInputs:
    """Network inputs of one cycle. Slot i of both tensors is the same camera."""
    images: torch.Tensor       # [N, 3, H, W] float32, channel planar
    img2lidars: torch.Tensor   # [N, 4, 4] float32
    camera_ids: List[SourceCameraId] = field(default_factory=list)

    @property
    def num_cameras(self) -> int:
        return self.images.shape[0]

    @property
    def images_data(self) -> torch.Tensor:
        return self.images.reshape(-1)

    @property
    def k_data(self) -> torch.Tensor:
        return self.img2lidars.reshape(-1)


# OBSTACLE RELATED
class BoxParamIndex(IntEnum):
    """Layout of one box in the network's box output."""
    X = 0           # center
    Y = 1
    Z = 2
    SIZE_X = 3      # extents
    SIZE_Y = 4
    SIZE_Z = 5
    YAW = 6         # orientation
    END_OF_INDEX = 7

    def __str__(self):
        return self.name


class ObjectType(IntEnum):
    UNKNOWN = 0
    CAR = 1
    SUV = 2
    LIGHTTRUCK = 3
    TRUCK = 4
    BUS = 5
    PEDESTRIAN = 6
    BICYCLE = 7
    MOTO = 8
    CYCLIST = 9
    MOTORCYCLIST = 10
    CONE = 11
    END_OF_INDEX = 12

    def __str__(self):
        return self.name


class ObjectSubType(IntEnum):
    UNKNOWN = 0
    UNKNOWN_MOVABLE = 1
    UNKNOWN_UNMOVABLE = 2
    CAR = 3
    VAN = 4
    TRUCK = 5
    BUS = 6
    CYCLIST = 7
    MOTORCYCLIST = 8
    TRICYCLIST = 9
    PEDESTRIAN = 10
    TRAFFICCONE = 11
    SMALLMOT = 12
    BIGMOT = 13
    NONMOT = 14
    END_OF_INDEX = 15

    def __str__(self):
        return self.name


SUBTYPE_TO_TYPE: Dict[ObjectSubType, ObjectType] = {
    ObjectSubType.UNKNOWN: ObjectType.UNKNOWN,
    ObjectSubType.UNKNOWN_MOVABLE: ObjectType.UNKNOWN,
    ObjectSubType.UNKNOWN_UNMOVABLE: ObjectType.UNKNOWN,
    ObjectSubType.CAR: ObjectType.CAR,
    ObjectSubType.VAN: ObjectType.LIGHTTRUCK,
    ObjectSubType.TRUCK: ObjectType.TRUCK,
    ObjectSubType.BUS: ObjectType.BUS,
    ObjectSubType.CYCLIST: ObjectType.CYCLIST,
    ObjectSubType.MOTORCYCLIST: ObjectType.MOTORCYCLIST,
    ObjectSubType.TRICYCLIST: ObjectType.CYCLIST,
    ObjectSubType.PEDESTRIAN: ObjectType.PEDESTRIAN,
    ObjectSubType.TRAFFICCONE: ObjectType.CONE,
    ObjectSubType.SMALLMOT: ObjectType.CAR,
    ObjectSubType.BIGMOT: ObjectType.TRUCK,
    ObjectSubType.NONMOT: ObjectType.BICYCLE,
}

# network class index -> sub type, every other label is UNKNOWN
LABEL_TO_SUBTYPE: Dict[int, ObjectSubType] = {
    0: ObjectSubType.CAR,
    1: ObjectSubType.TRUCK,
    3: ObjectSubType.BUS,
    6: ObjectSubType.MOTORCYCLIST,
    7: ObjectSubType.CYCLIST,
    8: ObjectSubType.PEDESTRIAN,
    9: ObjectSubType.TRAFFICCONE,
}


@dataclass
class RawDetection:
    box: np.ndarray     # [BoxParamIndex.END_OF_INDEX]
    label: int
    score: float


@dataclass
class Object3D:
    """A detected obstacle in the vehicle frame."""
    center: np.ndarray
    size: np.ndarray
    yaw: float
    type: ObjectType
    sub_type: ObjectSubType
    confidence: float
    type_probs: np.ndarray = field(
        default_factory=lambda: np.zeros(ObjectType.END_OF_INDEX, dtype=np.float32))
    sub_type_probs: np.ndarray = field(
        default_factory=lambda: np.zeros(ObjectSubType.END_OF_INDEX, dtype=np.float32))

    @property
    def to_dict(self) -> Dict:
        return {
            "x": float(self.center[0]),
            "y": float(self.center[1]),
            "z": float(self.center[2]),
            "size_x": float(self.size[0]),
            "size_y": float(self.size[1]),
            "size_z": float(self.size[2]),
            "yaw": float(self.yaw),
            "type": self.type.name,
            "sub_type": self.sub_type.name,
            "confidence": float(self.confidence),
        }

    def corners(self) -> np.ndarray:
        """Get the 8 corners of the 3D bounding box, shape [8, 3]."""
        l, w, h = self.size

        corner_offsets = np.array([
            [l/2, w/2, -h/2],    # front left bottom
            [l/2, -w/2, -h/2],   # front right bottom
            [-l/2, -w/2, -h/2],  # rear right bottom
            [-l/2, w/2, -h/2],   # rear left bottom
            [l/2, w/2, h/2],     # front left top
            [l/2, -w/2, h/2],    # front right top
            [-l/2, -w/2, h/2],   # rear right top
            [-l/2, w/2, h/2]     # rear left top
        ])

        rot = np.array([
            [np.cos(self.yaw), -np.sin(self.yaw), 0],
            [np.sin(self.yaw), np.cos(self.yaw), 0],
            [0, 0, 1]
        ])
        return corner_offsets @ rot.T + np.asarray(self.center, dtype=np.float64)
