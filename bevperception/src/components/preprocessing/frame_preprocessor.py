import cv2
import torch
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from bevperception.src.core.dataclass import SourceCameraId, ColorOrder, RigidTransform, CameraFrame, PreparedInputs
from bevperception.src.core.errors import IncompleteFrameSetError, InvalidNormalizationParamsError
from bevperception.src.utils.pose_transform import get_transform_from_image_to_vehicle
from bevperception.src.utils.debug_utils import check_nan_or_inf
from bevperception.src.utils.logger import get_logger

logger = get_logger(__name__)

CameraKey = Union[SourceCameraId, int, str]
FrameSet = Union[Sequence[Optional[CameraFrame]], Mapping[CameraKey, Optional[CameraFrame]]]


def to_camera_id(value: CameraKey) -> SourceCameraId:
    """Accept enum members, their integer values or their names."""
    if isinstance(value, SourceCameraId):
        return value
    if isinstance(value, str):
        try:
            return SourceCameraId[value]
        except KeyError:
            raise ValueError(f"Unknown camera {value}, available: {[c.name for c in SourceCameraId]}")
    return SourceCameraId(int(value))


def check_normalization_params(std: Sequence[float], scale: float):
    if scale == 0:
        raise InvalidNormalizationParamsError("normalization scale must not be 0")
    for c, s in enumerate(std):
        if s == 0:
            raise InvalidNormalizationParamsError(f"normalization std[{c}] must not be 0")


def normalize_image(image: np.ndarray,
                    mean: Sequence[float],
                    std: Sequence[float],
                    scale: float = 1.0,
                    out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    (pixel * scale - mean[c]) / std[c], written channel planar.

    Args:
        image: [H, W, 3]
        out: optional [3, H, W] float32 destination
    Returns:
        [3, H, W] float32
    """
    # before any pixel is read or written
    check_normalization_params(std, scale)

    height, width = image.shape[:2]
    if out is None:
        out = np.empty((3, height, width), dtype=np.float32)
    for c in range(3):
        out[c] = (image[:, :, c].astype(np.float32) * scale - mean[c]) / std[c]
    return out


class ImagePreprocessor:
    """Raw camera image -> normalized, cropped, channel planar network input."""

    def __init__(self,
                 resize_hw: Tuple[int, int] = (450, 800),
                 crop_rows: Tuple[int, int] = (130, 450),
                 crop_cols: Tuple[int, int] = (0, 800),
                 mean: Sequence[float] = (103.530, 116.280, 123.675),
                 std: Sequence[float] = (57.375, 57.120, 58.395),
                 scale: float = 1.0):
        check_normalization_params(std, scale)
        if len(mean) != 3 or len(std) != 3:
            raise ValueError(f"mean and std need 3 channels, but got {len(mean)} and {len(std)}")
        if not (0 <= crop_rows[0] < crop_rows[1] <= resize_hw[0] and 0 <= crop_cols[0] < crop_cols[1] <= resize_hw[1]):
            raise ValueError(f"crop window rows {crop_rows} cols {crop_cols} is outside the resized image {resize_hw}")

        self.resize_hw = tuple(resize_hw)
        self.crop_rows = tuple(crop_rows)
        self.crop_cols = tuple(crop_cols)
        self.mean = [float(m) for m in mean]
        self.std = [float(s) for s in std]
        self.scale = float(scale)

    @property
    def output_hw(self) -> Tuple[int, int]:
        return self.crop_rows[1] - self.crop_rows[0], self.crop_cols[1] - self.crop_cols[0]

    def __call__(self, image: np.ndarray, color_order: ColorOrder = ColorOrder.BGR,
                 out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Args:
            image: [H, W, 3] uint8 at native resolution
            color_order: channel order of ``image``
            out: optional [3, crop_h, crop_w] float32 destination
        Returns:
            [3, crop_h, crop_w] float32
        """
        if color_order == ColorOrder.BGR:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        # cv2 takes (width, height)
        image = cv2.resize(image, (self.resize_hw[1], self.resize_hw[0]), interpolation=cv2.INTER_LINEAR)

        image = image[self.crop_rows[0]:self.crop_rows[1], self.crop_cols[0]:self.crop_cols[1]]

        return normalize_image(image, self.mean, self.std, self.scale, out=out)


class ProjectionPreprocessor:
    """Per camera image -> vehicle projection in the memory order the network reads."""

    def __call__(self, frame: CameraFrame, vehicle_to_lidar: RigidTransform) -> np.ndarray:
        """
        Returns:
            [4, 4] float32
        """
        img2vehicle = get_transform_from_image_to_vehicle(
            vehicle_to_lidar=vehicle_to_lidar.matrix,
            vehicle_to_camera=frame.extrinsic,
            intrinsics=frame.intrinsics
        )
        # the network reads the transposed matrix column major
        serialized = img2vehicle.T.flatten(order='F')
        return serialized.reshape(4, 4).astype(np.float32)


class FramePreprocessor:
    """
    N 路相机帧 -> (图像张量 [N, 3, H, W], 投影矩阵张量 [N, 4, 4]).

    第 i 个 slot 在两个张量里对应同一个物理相机, 顺序由 camera_ids 决定.
    整个帧集合先做完整性检查, 任何一路相机缺失都直接报错, 不会产生部分填充的张量.
    """

    def __init__(self,
                 camera_ids: Sequence[CameraKey] = tuple(SourceCameraId),
                 image_hw: Optional[Tuple[int, int]] = (900, 1600),
                 resize_hw: Tuple[int, int] = (450, 800),
                 crop_rows: Tuple[int, int] = (130, 450),
                 crop_cols: Tuple[int, int] = (0, 800),
                 mean: Sequence[float] = (103.530, 116.280, 123.675),
                 std: Sequence[float] = (57.375, 57.120, 58.395),
                 scale: float = 1.0,
                 num_workers: int = 1,
                 check_abnormal: bool = False):
        self.camera_ids: List[SourceCameraId] = [to_camera_id(c) for c in camera_ids]
        if len(self.camera_ids) == 0:
            raise ValueError("camera_ids must not be empty")
        if len(set(self.camera_ids)) != len(self.camera_ids):
            raise ValueError(f"camera_ids contains duplicates: {self.camera_ids}")
        self.image_hw = tuple(image_hw) if image_hw is not None else None
        self.image_preprocessor = ImagePreprocessor(resize_hw, crop_rows, crop_cols, mean, std, scale)
        self.projection_preprocessor = ProjectionPreprocessor()
        self.num_workers = max(1, int(num_workers))
        self.check_abnormal = check_abnormal

    @property
    def num_cameras(self) -> int:
        return len(self.camera_ids)

    @property
    def images_shape(self) -> Tuple[int, int, int, int]:
        return (self.num_cameras, 3) + self.image_preprocessor.output_hw

    @property
    def k_shape(self) -> Tuple[int, int, int]:
        return self.num_cameras, 4, 4

    def prepare(self, frames: FrameSet, calibration: RigidTransform) -> PreparedInputs:
        """
        Args:
            frames: N 个 CameraFrame 的有序序列, 或 camera id -> CameraFrame 的字典
            calibration: vehicle -> lidar
        Returns:
            PreparedInputs
        """
        ordered_frames = self._collect_frames(frames)
        for frame in ordered_frames:
            self._validate_frame(frame)

        # fresh buffers every cycle, never shared with a previous call
        images = torch.empty(self.images_shape, dtype=torch.float32)
        img2lidars = torch.empty(self.k_shape, dtype=torch.float32)

        def _process(index: int):
            frame = ordered_frames[index]
            # each call writes only to its own slot
            self.image_preprocessor(frame.image, frame.color_order, out=images[index].numpy())
            img2lidars[index] = torch.from_numpy(self.projection_preprocessor(frame, calibration))

        if self.num_workers > 1:
            with ThreadPoolExecutor(max_workers=min(self.num_workers, self.num_cameras)) as executor:
                futures = [executor.submit(_process, i) for i in range(self.num_cameras)]
                for future in futures:
                    future.result()
        else:
            for i in range(self.num_cameras):
                _process(i)

        check_nan_or_inf(images, active=self.check_abnormal, name="images")
        check_nan_or_inf(img2lidars, active=self.check_abnormal, name="img2lidars")

        logger.debug(f"Prepared images {tuple(images.shape)}, img2lidars {tuple(img2lidars.shape)}")
        return PreparedInputs(images=images, img2lidars=img2lidars, camera_ids=list(self.camera_ids))

    @staticmethod
    def _frame_camera_id(value: CameraKey) -> SourceCameraId:
        try:
            return to_camera_id(value)
        except (TypeError, ValueError) as e:
            raise IncompleteFrameSetError(str(e)) from e

    def _collect_frames(self, frames: FrameSet) -> List[CameraFrame]:
        if frames is None:
            raise IncompleteFrameSetError("No frames given")

        if isinstance(frames, Mapping):
            by_camera = {self._frame_camera_id(k): v for k, v in frames.items()}
            missing = [c.name for c in self.camera_ids if by_camera.get(c) is None]
            if missing:
                raise IncompleteFrameSetError(f"Missing frames for cameras: {missing}")
            ordered = [by_camera[c] for c in self.camera_ids]
        else:
            ordered = list(frames)
            if len(ordered) != self.num_cameras:
                raise IncompleteFrameSetError(
                    f"Expected {self.num_cameras} camera frames, but got {len(ordered)}")
            for i, frame in enumerate(ordered):
                if frame is None:
                    raise IncompleteFrameSetError(f"Frame of {self.camera_ids[i].name} is missing")

        for camera_id, frame in zip(self.camera_ids, ordered):
            frame_camera_id = self._frame_camera_id(frame.camera_id)
            if frame_camera_id != camera_id:
                raise IncompleteFrameSetError(
                    f"Slot of {camera_id.name} holds a frame of {frame_camera_id.name}")
        return ordered

    def _validate_frame(self, frame: CameraFrame):
        name = to_camera_id(frame.camera_id).name
        image = frame.image
        if image is None or not isinstance(image, np.ndarray) or image.size == 0:
            raise IncompleteFrameSetError(f"Image of {name} is missing or unreadable")
        if image.ndim != 3 or image.shape[2] != 3:
            raise IncompleteFrameSetError(f"Image of {name} should be [H, W, 3], but got {image.shape}")
        if self.image_hw is not None and tuple(image.shape[:2]) != self.image_hw:
            raise IncompleteFrameSetError(
                f"Image of {name} should be {self.image_hw}, but got {tuple(image.shape[:2])}")
        if np.asarray(frame.intrinsics).shape != (3, 3):
            raise IncompleteFrameSetError(
                f"Intrinsics of {name} should be 3x3, but got {np.asarray(frame.intrinsics).shape}")
        if np.asarray(frame.extrinsic).shape != (4, 4):
            raise IncompleteFrameSetError(
                f"Extrinsic of {name} should be 4x4, but got {np.asarray(frame.extrinsic).shape}")
