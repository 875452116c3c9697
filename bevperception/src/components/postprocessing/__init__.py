from .detection_postprocessor import DetectionPostprocessor, filter_score, get_object_sub_type, to_objects, \
                                     save_results

__all__ = ["DetectionPostprocessor", "filter_score", "get_object_sub_type", "to_objects", "save_results"]
