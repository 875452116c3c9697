from typing import Dict, List, Optional, Union

from bevperception.configs.config import BEVDetectorConfig
from bevperception.src.core.registry import DETECTORS, RUNTIME
from bevperception.src.core.dataclass import RigidTransform, Object3D
from bevperception.src.components.calibration import CalibrationLoader
from bevperception.src.components.preprocessing import FramePreprocessor
from bevperception.src.components.preprocessing.frame_preprocessor import FrameSet
from bevperception.src.components.deploy import BaseInferenceEngine, InferenceInvoker
from bevperception.src.components.postprocessing import DetectionPostprocessor
from bevperception.src.utils.latency_utils import Timer
from bevperception.src.utils.logger import get_logger

logger = get_logger(__name__)


@DETECTORS.register_module()
class BEVObstacleDetector:
    """
    多相机 BEV 障碍物检测, 每个周期: 预处理 -> 推理 -> 分数过滤 -> Object3D.

    vehicle -> lidar 的标定只在构造时读取一次, 之后所有周期只读共享.
    任何一步出错都直接抛给调用方, 失败的周期不会往结果列表里追加任何东西.
    """

    def __init__(self,
                 config: Union[BEVDetectorConfig, Dict, None] = None,
                 engine: Optional[BaseInferenceEngine] = None,
                 calibration: Optional[RigidTransform] = None):
        """
        Args:
            config: BEVDetectorConfig 或者等价的字典
            engine: 直接注入推理引擎, 为 None 时按 config.runtime.engine 构建
            calibration: 直接注入 vehicle -> lidar 标定, 为 None 时读取 config.calibration_file
        """
        if config is None:
            config = BEVDetectorConfig()
        elif isinstance(config, dict):
            config = BEVDetectorConfig.from_dict(config)
        self.config = config

        if calibration is None:
            calibration = CalibrationLoader().load(config.calibration_file)
        self.vehicle_to_lidar = calibration

        preprocess_cfg = config.preprocess
        self.preprocessor = FramePreprocessor(
            camera_ids=preprocess_cfg.camera_ids,
            image_hw=preprocess_cfg.image_hw,
            resize_hw=preprocess_cfg.resize_hw,
            crop_rows=preprocess_cfg.crop_rows,
            crop_cols=preprocess_cfg.crop_cols,
            mean=preprocess_cfg.mean,
            std=preprocess_cfg.std,
            scale=preprocess_cfg.scale,
            num_workers=preprocess_cfg.num_workers,
            check_abnormal=preprocess_cfg.check_abnormal
        )

        if engine is None:
            engine = RUNTIME.build(config.runtime.engine)
        self.invoker = InferenceInvoker(engine)
        self.postprocessor = DetectionPostprocessor(score_threshold=config.postprocess.score_threshold)

        self.images_shape = config.images_shape
        self.k_shape = config.k_shape
        logger.info(f"BEVObstacleDetector ready: {len(preprocess_cfg.camera_ids)} cameras, "
                    f"images {self.images_shape}, k {self.k_shape}, "
                    f"score_threshold {config.postprocess.score_threshold}")

    def detect(self, frames: FrameSet, objects: Optional[List[Object3D]] = None) -> List[Object3D]:
        """
        Args:
            frames: 本周期 N 路相机帧
            objects: 结果追加到这个列表, 已有内容保持不变
        Returns:
            objects
        """
        if objects is None:
            objects = []
        timer = Timer()

        inputs = self.preprocessor.prepare(frames, self.vehicle_to_lidar)
        preprocess_ms = timer.toc()
        logger.debug(f"images size {inputs.images_data.numel()}, k size {inputs.k_data.numel()}")

        boxes, scores, labels = self.invoker.infer(inputs.images_data, self.images_shape,
                                                  inputs.k_data, self.k_shape)
        inference_ms = timer.toc()

        new_objects = self.postprocessor.process(boxes, labels, scores)
        postprocess_ms = timer.toc()

        objects.extend(new_objects)
        logger.info(f"Detected {len(new_objects)} obstacles, "
                    f"preprocess {preprocess_ms:.2f} ms, inference {inference_ms:.2f} ms, "
                    f"postprocess {postprocess_ms:.2f} ms")
        return objects
