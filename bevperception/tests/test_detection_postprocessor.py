import json
import numpy as np
import pytest

from bevperception.src.core.dataclass import ObjectType, ObjectSubType, RawDetection, Object3D
from bevperception.src.components.postprocessing import DetectionPostprocessor, filter_score, \
                                                        get_object_sub_type, to_objects, save_results


def _boxes(n):
    return np.arange(n * 7, dtype=np.float32)


def test_filter_score_is_strict_and_stable():
    scores = [0.9, 0.5, 0.5, 0.95]
    detections = filter_score(_boxes(4), [0, 1, 3, 6], scores, 0.5)

    assert [d.score for d in detections] == pytest.approx([0.9, 0.95])
    assert [d.label for d in detections] == [0, 6]
    np.testing.assert_array_equal(detections[0].box, _boxes(4)[0:7])
    np.testing.assert_array_equal(detections[1].box, _boxes(4)[21:28])


def test_filter_score_nothing_left():
    assert filter_score(_boxes(2), [0, 0], [0.1, 0.2], 0.3) == []
    assert filter_score([], [], [], 0.3) == []


@pytest.mark.parametrize(
    "label, expected",
    [
        (0, ObjectSubType.CAR),
        (1, ObjectSubType.TRUCK),
        (3, ObjectSubType.BUS),
        (6, ObjectSubType.MOTORCYCLIST),
        (7, ObjectSubType.CYCLIST),
        (8, ObjectSubType.PEDESTRIAN),
        (9, ObjectSubType.TRAFFICCONE),
        (2, ObjectSubType.UNKNOWN),
        (4, ObjectSubType.UNKNOWN),
        (5, ObjectSubType.UNKNOWN),
        (-1, ObjectSubType.UNKNOWN),
        (42, ObjectSubType.UNKNOWN),
    ],
)
def test_label_mapping(label, expected):
    assert get_object_sub_type(label) == expected
    assert get_object_sub_type(np.int64(label)) == expected


@pytest.mark.parametrize(
    "label, expected_type",
    [
        (0, ObjectType.CAR),
        (1, ObjectType.TRUCK),
        (3, ObjectType.BUS),
        (6, ObjectType.MOTORCYCLIST),
        (7, ObjectType.CYCLIST),
        (8, ObjectType.PEDESTRIAN),
        (9, ObjectType.CONE),
        (42, ObjectType.UNKNOWN),
    ],
)
def test_to_objects_type(label, expected_type):
    detection = RawDetection(box=np.zeros(7, dtype=np.float32), label=label, score=0.7)
    obj = to_objects([detection])[0]
    assert obj.type == expected_type


def test_to_objects_fields():
    detection = RawDetection(box=np.array([1, 2, 3, 4, 5, 6, 0.1], dtype=np.float32), label=0, score=0.8)
    objects = to_objects([detection])

    assert len(objects) == 1
    obj = objects[0]
    assert obj.type == ObjectType.CAR
    assert obj.sub_type == ObjectSubType.CAR
    assert obj.confidence == pytest.approx(0.8)
    np.testing.assert_allclose(obj.center, [1.0, 2.0, 3.0])
    np.testing.assert_allclose(obj.size, [4.0, 5.0, 6.0])
    assert obj.yaw == pytest.approx(0.1)

    assert obj.type_probs.shape == (ObjectType.END_OF_INDEX,)
    assert obj.type_probs[ObjectType.CAR] == pytest.approx(0.8)
    assert obj.type_probs.sum() == pytest.approx(0.8)
    assert obj.sub_type_probs[ObjectSubType.CAR] == pytest.approx(0.8)
    assert obj.sub_type_probs.sum() == pytest.approx(0.8)


def test_process_appends_to_existing_objects():
    existing = Object3D(center=np.zeros(3), size=np.ones(3), yaw=0.0,
                        type=ObjectType.BUS, sub_type=ObjectSubType.BUS, confidence=0.99)
    objects = [existing]

    result = DetectionPostprocessor(score_threshold=0.5).process(
        _boxes(3), [0, 8, 9], [0.6, 0.4, 0.7], objects)

    assert result is objects
    assert len(objects) == 3
    assert objects[0] is existing
    assert objects[0].sub_type == ObjectSubType.BUS
    assert [o.sub_type for o in objects[1:]] == [ObjectSubType.CAR, ObjectSubType.TRAFFICCONE]


def test_process_default_threshold():
    objects = DetectionPostprocessor().process(_boxes(2), [0, 0], [0.3, 0.31])
    assert len(objects) == 1
    assert objects[0].confidence == pytest.approx(0.31)


def test_corners():
    obj = Object3D(center=np.array([10.0, 0.0, 1.0]), size=np.array([4.0, 2.0, 1.5]), yaw=np.pi / 2,
                   type=ObjectType.CAR, sub_type=ObjectSubType.CAR, confidence=0.9)
    corners = obj.corners()
    assert corners.shape == (8, 3)
    np.testing.assert_allclose(corners.mean(axis=0), [10.0, 0.0, 1.0], atol=1e-12)
    # rotated by 90 degrees the length lies along y
    np.testing.assert_allclose(np.ptp(corners[:, 0]), 2.0, atol=1e-9)
    np.testing.assert_allclose(np.ptp(corners[:, 1]), 4.0, atol=1e-9)
    np.testing.assert_allclose(np.ptp(corners[:, 2]), 1.5, atol=1e-9)


def test_save_results(tmp_path):
    detection = RawDetection(box=np.array([1, 2, 3, 4, 5, 6, 0.1], dtype=np.float32), label=9, score=0.8)
    output_path = tmp_path / "results" / "predictions.json"

    save_results(to_objects([detection]), 1531883530.44, str(output_path), with_corners=True)

    with open(output_path) as f:
        results = json.load(f)
    assert results['timestamp'] == pytest.approx(1531883530.44)
    assert len(results['obstacles']) == 1
    obstacle = results['obstacles'][0]
    assert obstacle['type'] == 'CONE'
    assert obstacle['sub_type'] == 'TRAFFICCONE'
    assert obstacle['x'] == pytest.approx(1.0)
    assert obstacle['size_z'] == pytest.approx(6.0)
    assert obstacle['confidence'] == pytest.approx(0.8)
    assert len(obstacle['corners']) == 8
