import os
import torch
import onnxruntime as ort
import numpy as np
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bevperception.src.core.registry import RUNTIME
from bevperception.src.core.dataclass import BoxParamIndex
from bevperception.src.core.errors import InferenceFailedError
from bevperception.src.utils.logger import get_logger

logger = get_logger(__name__)

__all__ = ["BaseInferenceEngine", "OnnxRuntimeEngine", "TorchScriptEngine", "InferenceInvoker"]

TensorLike = Union[torch.Tensor, np.ndarray, Sequence[float]]


class BaseInferenceEngine(ABC):
    """Base class for inference engines, inputs and outputs are bound by their declared order"""

    @abstractmethod
    def get_input_names(self) -> List[str]:
        pass

    @abstractmethod
    def get_output_names(self) -> List[str]:
        pass

    @abstractmethod
    def run(self, feeds: Dict[str, np.ndarray]) -> List[np.ndarray]:
        """Run one synchronous pass, outputs in the order of get_output_names()"""
        pass


@RUNTIME.register_module()
class OnnxRuntimeEngine(BaseInferenceEngine):
    """ONNX Runtime session with optional CUDA / TensorRT execution providers"""

    GRAPH_OPTIMIZATION_LEVELS = {
        "disable": "ORT_DISABLE_ALL",
        "basic": "ORT_ENABLE_BASIC",
        "extended": "ORT_ENABLE_EXTENDED",
        "all": "ORT_ENABLE_ALL",
    }

    def __init__(self,
                 model_path: str,
                 device: str = "cpu",
                 gpu_id: int = 0,
                 use_trt: bool = False,
                 trt_precision: int = 0,
                 trt_use_static: bool = False,
                 trt_static_dir: str = "",
                 graph_optimization_level: str = "all",
                 intra_op_num_threads: int = 0):
        """
        Args:
            model_path: .onnx file
            device: 'cpu' or 'cuda'
            gpu_id: cuda device id
            use_trt: put the TensorRT provider in front of the others
            trt_precision: 0 for fp32, 1 for fp16
            trt_use_static: cache built engines in trt_static_dir
            graph_optimization_level: one of disable / basic / extended / all
            intra_op_num_threads: 0 lets onnxruntime decide
        """
        if trt_precision not in (0, 1):
            raise ValueError(f"Unknown trt_precision {trt_precision}, expected 0 (fp32) or 1 (fp16)")
        if graph_optimization_level not in self.GRAPH_OPTIMIZATION_LEVELS:
            raise ValueError(f"Unknown graph_optimization_level {graph_optimization_level}, "
                             f"available: {list(self.GRAPH_OPTIMIZATION_LEVELS.keys())}")
        if not os.path.isfile(model_path):
            raise FileNotFoundError(f"Model file not found: {model_path}")

        session_options = ort.SessionOptions()
        session_options.graph_optimization_level = getattr(
            ort.GraphOptimizationLevel, self.GRAPH_OPTIMIZATION_LEVELS[graph_optimization_level])
        if intra_op_num_threads > 0:
            session_options.intra_op_num_threads = intra_op_num_threads

        providers: List[Union[str, Tuple[str, Dict[str, Any]]]] = []
        if use_trt:
            trt_options = {
                "device_id": gpu_id,
                "trt_max_workspace_size": 1 << 30,
                "trt_min_subgraph_size": 12,
                "trt_fp16_enable": trt_precision == 1,
                "trt_engine_cache_enable": trt_use_static,
            }
            if trt_use_static:
                os.makedirs(trt_static_dir or ".", exist_ok=True)
                trt_options["trt_engine_cache_path"] = trt_static_dir or "."
            providers.append(("TensorrtExecutionProvider", trt_options))
        if device == "cuda" or use_trt:
            providers.append(("CUDAExecutionProvider", {"device_id": gpu_id}))
        providers.append("CPUExecutionProvider")

        available = set(ort.get_available_providers())
        for provider in providers:
            provider_name = provider[0] if isinstance(provider, tuple) else provider
            if provider_name not in available:
                logger.warning(f"{provider_name} is not available in this onnxruntime build")

        self.model_path = model_path
        self.session = ort.InferenceSession(model_path, sess_options=session_options, providers=providers)
        self._input_names = [i.name for i in self.session.get_inputs()]
        self._output_names = [o.name for o in self.session.get_outputs()]
        logger.info(f"Loaded {model_path} with providers {self.session.get_providers()}, "
                    f"inputs {self._input_names}, outputs {self._output_names}")

    def get_input_names(self) -> List[str]:
        return list(self._input_names)

    def get_output_names(self) -> List[str]:
        return list(self._output_names)

    def run(self, feeds: Dict[str, np.ndarray]) -> List[np.ndarray]:
        return self.session.run(self._output_names, feeds)


@RUNTIME.register_module()
class TorchScriptEngine(BaseInferenceEngine):
    """TorchScript file or an in-memory nn.Module called with the inputs positionally"""

    def __init__(self,
                 model_path: Optional[str] = None,
                 module: Optional[torch.nn.Module] = None,
                 input_names: Sequence[str] = ("images", "k"),
                 output_names: Sequence[str] = ("boxes", "scores", "labels"),
                 device: str = "cpu"):
        if (model_path is None) == (module is None):
            raise ValueError("Exactly one of model_path and module should be given")
        self.device = torch.device(device)
        if model_path is not None:
            if not os.path.isfile(model_path):
                raise FileNotFoundError(f"Model file not found: {model_path}")
            module = torch.jit.load(model_path, map_location=self.device)
        self.module = module.to(self.device).eval()
        self._input_names = list(input_names)
        self._output_names = list(output_names)

    def get_input_names(self) -> List[str]:
        return list(self._input_names)

    def get_output_names(self) -> List[str]:
        return list(self._output_names)

    @torch.no_grad()
    def run(self, feeds: Dict[str, np.ndarray]) -> List[np.ndarray]:
        inputs = [torch.from_numpy(np.ascontiguousarray(feeds[name])).to(self.device) for name in self._input_names]
        outputs = self.module(*inputs)
        if isinstance(outputs, dict):
            outputs = [outputs[name] for name in self._output_names]
        elif isinstance(outputs, torch.Tensor):
            outputs = [outputs]
        return [o.detach().cpu().numpy() for o in outputs]


class InferenceInvoker:
    """
    把两个打包好的输入张量绑定到引擎的前两个输入上, 执行一次同步推理,
    按声明顺序读取输出: 第 0 个是 boxes, 第 1 个是 scores, 第 2 个是 labels.
    失败不重试, 统一抛出 InferenceFailedError.
    """

    NUM_OUTPUTS = 3

    def __init__(self, engine: BaseInferenceEngine):
        self.engine = engine

    @staticmethod
    def _bind(name: str, data: TensorLike, shape: Sequence[int]) -> np.ndarray:
        if isinstance(data, torch.Tensor):
            data = data.detach().cpu().numpy()
        array = np.asarray(data, dtype=np.float32)
        expected = int(np.prod(shape))
        if array.size != expected:
            raise InferenceFailedError(
                f"Input {name} has {array.size} elements, which does not match shape {tuple(shape)}")
        return np.ascontiguousarray(array.reshape(tuple(shape)))

    def infer(self,
              images: TensorLike,
              images_shape: Sequence[int],
              k: TensorLike,
              k_shape: Sequence[int]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Args:
            images: 打包后的图像张量
            images_shape: e.g. (1, N, 3, H, W)
            k: 打包后的投影矩阵张量
            k_shape: e.g. (1, N, 4, 4)
        Returns:
            boxes: [M * 7] float32
            scores: [M] float32
            labels: [M] int64
        """
        input_names = self.engine.get_input_names()
        if len(input_names) < 2:
            raise InferenceFailedError(f"Engine should declare 2 inputs, but got {input_names}")

        feeds = {
            input_names[0]: self._bind(input_names[0], images, images_shape),
            input_names[1]: self._bind(input_names[1], k, k_shape),
        }

        try:
            outputs = self.engine.run(feeds)
        except Exception as e:
            raise InferenceFailedError(f"Inference failed: {e}") from e

        if outputs is None or len(outputs) < self.NUM_OUTPUTS:
            raise InferenceFailedError(
                f"Engine should return {self.NUM_OUTPUTS} outputs, but got {0 if outputs is None else len(outputs)}")

        try:
            boxes = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
            scores = np.asarray(outputs[1], dtype=np.float32).reshape(-1)
            raw_labels = np.asarray(outputs[2], dtype=np.float64).reshape(-1)
        except (TypeError, ValueError) as e:
            raise InferenceFailedError(f"Engine outputs are not numeric arrays: {e}") from e

        # labels are class indices
        if not np.all(np.isfinite(raw_labels)) or np.any(raw_labels != np.round(raw_labels)):
            raise InferenceFailedError(f"Labels should be whole numbers, but got {raw_labels[:8].tolist()}")
        labels = raw_labels.astype(np.int64)

        if boxes.size != BoxParamIndex.END_OF_INDEX * scores.size:
            raise InferenceFailedError(
                f"Got {boxes.size} box values for {scores.size} scores, "
                f"expected {BoxParamIndex.END_OF_INDEX} per detection")
        if labels.size != scores.size:
            raise InferenceFailedError(f"Got {labels.size} labels for {scores.size} scores")

        logger.debug(f"Inference returned {scores.size} candidates")
        return boxes, scores, labels
