import numpy as np
import pytest
import torch
import torch.nn as nn
import yaml

from bevperception.configs.config import BEVDetectorConfig, PreprocessConfig, PostprocessConfig
from bevperception.src.core.dataclass import SourceCameraId, ColorOrder, CameraFrame, RigidTransform
from bevperception.src.components.deploy import BaseInferenceEngine

# a tenth of the 900x1600 nuScenes images keeps the tests fast
SMALL_IMAGE_HW = (90, 160)
SMALL_RESIZE_HW = (45, 80)
SMALL_CROP_ROWS = (13, 45)
SMALL_CROP_COLS = (0, 80)

# camera looking along the vehicle x axis
FORWARD_CAMERA_EXTRINSIC = np.array([
    [0.0, -1.0, 0.0, 0.0],
    [0.0, 0.0, -1.0, 1.5],
    [1.0, 0.0, 0.0, -1.0],
    [0.0, 0.0, 0.0, 1.0],
])

SMALL_INTRINSICS = np.array([
    [100.0, 0.0, 80.0],
    [0.0, 100.0, 45.0],
    [0.0, 0.0, 1.0],
])


DEFAULT_OUTPUTS = object()


class StubEngine(BaseInferenceEngine):
    """Returns fixed outputs and remembers what it was fed"""

    def __init__(self, outputs=DEFAULT_OUTPUTS, error=None,
                 input_names=("images", "k"), output_names=("boxes", "scores", "labels")):
        if outputs is DEFAULT_OUTPUTS:
            outputs = [
                np.array([[1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 0.1]], dtype=np.float32),
                np.array([0.8], dtype=np.float32),
                np.array([0], dtype=np.int64),
            ]
        self.outputs = outputs
        self.error = error
        self.input_names = list(input_names)
        self.output_names = list(output_names)
        self.feeds = []

    def get_input_names(self):
        return self.input_names

    def get_output_names(self):
        return self.output_names

    def run(self, feeds):
        self.feeds.append(feeds)
        if self.error is not None:
            raise self.error
        return self.outputs


class TinyBEVHead(nn.Module):
    """Ignores its inputs apart from keeping them in the graph, emits one CAR detection"""

    def forward(self, images, k):
        anchor = images.mean() * 0.0 + k.mean() * 0.0
        boxes = torch.tensor([[1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 0.1]]) + anchor
        scores = torch.tensor([0.8]) + anchor
        labels = (scores * 0.0).long()
        return boxes, scores, labels


def make_frame(camera_id, value=128, image_hw=SMALL_IMAGE_HW, color_order=ColorOrder.BGR):
    image = np.full((image_hw[0], image_hw[1], 3), value, dtype=np.uint8)
    return CameraFrame(
        camera_id=camera_id,
        image=image,
        intrinsics=SMALL_INTRINSICS.copy(),
        extrinsic=FORWARD_CAMERA_EXTRINSIC.copy(),
        color_order=color_order,
    )


def write_calibration(path, rotation=(1.0, 0.0, 0.0, 0.0), translation=(0.0, 0.0, 0.0)):
    record = {
        'transform': {
            'rotation': dict(zip(('w', 'x', 'y', 'z'), map(float, rotation))),
            'translation': dict(zip(('x', 'y', 'z'), map(float, translation))),
        }
    }
    with open(path, 'w') as f:
        yaml.safe_dump(record, f)
    return str(path)


@pytest.fixture
def gray_frames():
    """Six uniform gray frames, one per surround camera in network order"""
    return [make_frame(camera_id) for camera_id in SourceCameraId]


@pytest.fixture
def identity_calibration():
    return RigidTransform(matrix=np.eye(4), source_frame="vehicle", target_frame="lidar")


@pytest.fixture
def calibration_file(tmp_path):
    return write_calibration(tmp_path / "lidar_extrinsics.yaml")


@pytest.fixture
def small_preprocess_kwargs():
    return dict(
        image_hw=SMALL_IMAGE_HW,
        resize_hw=SMALL_RESIZE_HW,
        crop_rows=SMALL_CROP_ROWS,
        crop_cols=SMALL_CROP_COLS,
    )


@pytest.fixture
def small_config(calibration_file, small_preprocess_kwargs):
    return BEVDetectorConfig(
        calibration_file=calibration_file,
        preprocess=PreprocessConfig(**small_preprocess_kwargs),
        postprocess=PostprocessConfig(score_threshold=0.5),
    )


@pytest.fixture
def stub_engine():
    return StubEngine()


@pytest.fixture
def traced_model_file(tmp_path):
    images = torch.zeros(1, 6, 3, 32, 80)
    k = torch.zeros(1, 6, 4, 4)
    traced = torch.jit.trace(TinyBEVHead().eval(), (images, k))
    path = tmp_path / "tiny_bev_head.pt"
    traced.save(str(path))
    return str(path)
