from .config import Config
from .registry import Registry, BEV_PERCEPTION, DETECTORS, DEPLOY, RUNTIME
from .errors import (
    BEVPerceptionError, CalibrationNotFoundError, MalformedCalibrationError,
    InvalidNormalizationParamsError, SingularTransformError, IncompleteFrameSetError,
    InferenceFailedError
)
from .dataclass import SourceCameraId, ColorOrder, RigidTransform, CameraFrame, PreparedInputs, \
                       BoxParamIndex, ObjectType, ObjectSubType, SUBTYPE_TO_TYPE, LABEL_TO_SUBTYPE, \
                       RawDetection, Object3D

__version__ = '0.1.0'

registry_modules = ['Registry', 'BEV_PERCEPTION', 'DETECTORS', 'DEPLOY', 'RUNTIME']

error_modules = ['BEVPerceptionError', 'CalibrationNotFoundError', 'MalformedCalibrationError',
                 'InvalidNormalizationParamsError', 'SingularTransformError', 'IncompleteFrameSetError',
                 'InferenceFailedError']

dataclass_modules = ['SourceCameraId', 'ColorOrder', 'RigidTransform', 'CameraFrame', 'PreparedInputs',
                     'BoxParamIndex', 'ObjectType', 'ObjectSubType', 'SUBTYPE_TO_TYPE', 'LABEL_TO_SUBTYPE',
                     'RawDetection', 'Object3D']

__all__ = ['Config'] + registry_modules + error_modules + dataclass_modules
