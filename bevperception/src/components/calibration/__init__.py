from .calibration_loader import CalibrationLoader, get_matrix_rt

__all__ = ["CalibrationLoader", "get_matrix_rt"]
