from .runtime import BaseInferenceEngine, OnnxRuntimeEngine, TorchScriptEngine, InferenceInvoker

__all__ = [
    'BaseInferenceEngine',
    'OnnxRuntimeEngine',
    'TorchScriptEngine',
    'InferenceInvoker'
]
