from .frame_preprocessor import FramePreprocessor, ImagePreprocessor, ProjectionPreprocessor, \
                                normalize_image, check_normalization_params, to_camera_id

__all__ = ["FramePreprocessor", "ImagePreprocessor", "ProjectionPreprocessor",
           "normalize_image", "check_normalization_params", "to_camera_id"]
