import os
import json
import argparse
import cv2
import numpy as np
from typing import List, Tuple

from bevperception.configs.config import get_config
from bevperception.src.core.dataclass import CameraFrame, ColorOrder
from bevperception.src.components.preprocessing.frame_preprocessor import to_camera_id
from bevperception.src.components.postprocessing import save_results
from bevperception.src.pipelines import BEVObstacleDetector
from bevperception.src.utils.logger import setup_logging


def load_frames(manifest_path: str) -> Tuple[float, List[CameraFrame]]:
    """
    读取一帧的相机清单, 格式:

        {
          "timestamp": 1531883530.44,
          "frames": [
            {"camera_id": "CAM_FRONT", "image": "CAM_FRONT.jpg", "color_order": "BGR",
             "intrinsics": [[...], [...], [...]], "extrinsic": [[...], [...], [...], [...]]},
            ...
          ]
        }

    相对路径的图片以清单所在目录为根. 读不出来的图片保留为 None, 由预处理报错.
    """
    with open(manifest_path, 'r') as f:
        manifest = json.load(f)

    root = os.path.dirname(os.path.abspath(manifest_path))
    timestamp = float(manifest.get('timestamp', 0.0))
    frames = []
    for item in manifest['frames']:
        image_path = item['image']
        if not os.path.isabs(image_path):
            image_path = os.path.join(root, image_path)
        frames.append(CameraFrame(
            camera_id=to_camera_id(item['camera_id']),
            image=cv2.imread(image_path, cv2.IMREAD_COLOR),
            intrinsics=np.array(item['intrinsics'], dtype=np.float64),
            extrinsic=np.array(item['extrinsic'], dtype=np.float64),
            color_order=ColorOrder[item.get('color_order', 'BGR')],
            timestamp=timestamp
        ))
    return timestamp, frames


def parse_args():
    parser = argparse.ArgumentParser(description='Run BEV obstacle detection on one set of camera frames')

    # 配置文件参数
    parser.add_argument('--config_file', type=str, nargs='+', default=None,
                        help='config file path(s), python / yaml / json, later files override earlier ones')

    parser.add_argument('--frames', type=str, required=True, help='Path to the json manifest of camera frames')
    parser.add_argument('--output-dir', type=str, default='results', help='Directory to save results')
    parser.add_argument('--with-corners', action='store_true', help='Also save the 8 box corners of each obstacle')

    # 通用方式覆盖配置文件中的任意配置项
    parser.add_argument('--config-override', nargs='+', action='append',
                        help='Override config values. Format: section.key=value')

    return parser.parse_args()


def main():
    args = parse_args()
    config = get_config(args)
    logger = setup_logging(config.logging.level, config.logging.log_dir)

    detector = BEVObstacleDetector(config)
    timestamp, frames = load_frames(args.frames)
    objects = detector.detect(frames)

    output_path = os.path.join(args.output_dir, f'predictions_{timestamp}.json')
    save_results(objects, timestamp, output_path, with_corners=args.with_corners)
    logger.info(f"Saved {len(objects)} obstacles to {output_path}")


if __name__ == '__main__':
    main()
