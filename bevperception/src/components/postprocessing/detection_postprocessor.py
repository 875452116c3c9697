import os
import json
import numpy as np
from typing import List, Optional, Sequence

from bevperception.src.core.dataclass import BoxParamIndex, ObjectSubType, SUBTYPE_TO_TYPE, \
                                             LABEL_TO_SUBTYPE, RawDetection, Object3D
from bevperception.src.utils.logger import get_logger

logger = get_logger(__name__)


def filter_score(boxes: Sequence[float],
                 labels: Sequence[int],
                 scores: Sequence[float],
                 threshold: float) -> List[RawDetection]:
    """Keep detection i iff scores[i] > threshold, in the network's order."""
    boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, BoxParamIndex.END_OF_INDEX)
    labels = np.asarray(labels).reshape(-1)
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)
    # compared at the precision the network emits scores in
    threshold = np.float32(threshold)

    detections = []
    for i in range(scores.shape[0]):
        if scores[i] > threshold:
            detections.append(RawDetection(box=boxes[i].copy(), label=int(labels[i]), score=float(scores[i])))
    return detections


def get_object_sub_type(label: int) -> ObjectSubType:
    return LABEL_TO_SUBTYPE.get(int(label), ObjectSubType.UNKNOWN)


def to_objects(detections: Sequence[RawDetection]) -> List[Object3D]:
    objects = []
    for detection in detections:
        box = detection.box
        sub_type = get_object_sub_type(detection.label)
        object_type = SUBTYPE_TO_TYPE[sub_type]

        obj = Object3D(
            center=np.array([box[BoxParamIndex.X], box[BoxParamIndex.Y], box[BoxParamIndex.Z]], dtype=np.float64),
            size=np.array([box[BoxParamIndex.SIZE_X], box[BoxParamIndex.SIZE_Y], box[BoxParamIndex.SIZE_Z]],
                          dtype=np.float64),
            yaw=float(box[BoxParamIndex.YAW]),
            type=object_type,
            sub_type=sub_type,
            confidence=detection.score,
        )
        obj.type_probs[object_type] = detection.score
        obj.sub_type_probs[sub_type] = detection.score
        objects.append(obj)
    return objects


class DetectionPostprocessor:
    """Score filter followed by label mapping, one Object3D per surviving detection."""

    def __init__(self, score_threshold: float = 0.3):
        self.score_threshold = float(score_threshold)

    def process(self,
                boxes: Sequence[float],
                labels: Sequence[int],
                scores: Sequence[float],
                objects: Optional[List[Object3D]] = None) -> List[Object3D]:
        """
        Args:
            boxes: [M * 7]
            labels: [M]
            scores: [M]
            objects: 结果追加到这个列表, 已有的元素不会被修改
        Returns:
            objects
        """
        if objects is None:
            objects = []
        detections = filter_score(boxes, labels, scores, self.score_threshold)
        new_objects = to_objects(detections)
        objects.extend(new_objects)
        logger.debug(f"{len(detections)} of {len(np.asarray(scores).reshape(-1))} candidates "
                     f"above score threshold {self.score_threshold}")
        return objects


def save_results(objects: Sequence[Object3D], timestamp: float, output_path: str, with_corners: bool = False):
    """Save detection results to JSON file."""
    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    results = {
        'timestamp': timestamp,
        'obstacles': []
    }

    for obj in objects:
        obstacle = obj.to_dict
        if with_corners:
            obstacle['corners'] = obj.corners().tolist()
        results['obstacles'].append(obstacle)

    with open(output_path, 'w') as f:
        json.dump(results, f, indent=2)
