from typing import Dict, Any, Union, List
import torch
import numpy as np


def check_nan_or_inf(tensor: Union[torch.Tensor, np.ndarray, List, Dict[Any, Any]],
                     active: bool = True,
                     name: str = "tensor"):
    """Raise ValueError naming the first NaN / Inf element, e.g. ``images[2, 0, 13, 7]``."""
    if not active:
        return

    if isinstance(tensor, (list, tuple)):
        for i, t in enumerate(tensor):
            check_nan_or_inf(t, active, f"{name}[{i}]")
        return
    if isinstance(tensor, dict):
        for k, v in tensor.items():
            check_nan_or_inf(v, active, f"{name}.{k}")
        return

    if isinstance(tensor, np.ndarray):
        tensor = torch.from_numpy(tensor)
    if not tensor.is_floating_point():
        return

    bad = ~torch.isfinite(tensor)
    if bad.any():
        index = tuple(int(i) for i in torch.nonzero(bad)[0])
        kind = "NaN" if torch.isnan(tensor[index]) else "Inf"
        raise ValueError(f"{name}{list(index)} is {kind}")
