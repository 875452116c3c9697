from .bev_obstacle_detector import BEVObstacleDetector

__all__ = ["BEVObstacleDetector"]
