# PETR v1 (vovnet, 800x320 input) exported for inference, six nuScenes surround cameras

calibration_file = 'data/calibration/lidar_extrinsics.yaml'

preprocess = dict(
    camera_ids=['CAM_FRONT', 'CAM_FRONT_RIGHT', 'CAM_FRONT_LEFT', 'CAM_BACK', 'CAM_BACK_LEFT', 'CAM_BACK_RIGHT'],
    image_hw=[900, 1600],
    resize_hw=[450, 800],
    crop_rows=[130, 450],
    crop_cols=[0, 800],
    mean=[103.530, 116.280, 123.675],
    std=[57.375, 57.120, 58.395],
    scale=1.0,
    num_workers=1,
    check_abnormal=False,
)

runtime = dict(
    engine=dict(
        type='OnnxRuntimeEngine',
        model_path='data/petr_v1/petr_inference.onnx',
        device='cuda',
        gpu_id=0,
        use_trt=False,
        trt_precision=0,
        trt_use_static=False,
        trt_static_dir='data/petr_v1/trt_cache',
    ),
    batch_dim=True,
)

postprocess = dict(
    score_threshold=0.3,
)

logging = dict(
    level='INFO',
    log_dir=None,
)
