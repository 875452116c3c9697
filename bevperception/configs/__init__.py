from .config import BEVDetectorConfig, PreprocessConfig, RuntimeConfig, PostprocessConfig, LoggingConfig, get_config

__all__ = ["BEVDetectorConfig", "PreprocessConfig", "RuntimeConfig", "PostprocessConfig", "LoggingConfig",
           "get_config"]
