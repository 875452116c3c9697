from typing import Any, Callable, Dict, List, Optional, Type, Union
import inspect
from omegaconf import DictConfig, OmegaConf
from .config import Config


class Registry:
    """按名字登记推理引擎 / 检测流水线, 再用 ``{type: 名字, 其余参数...}`` 的配置构建实例.

    注册表可以挂子注册表, 名字用点号连接, 例如 ``bev_perception.deploy.runtime``.
    """

    def __init__(self, name: str):
        self._name = name
        self._entries: Dict[str, Type] = {}
        self._children: Dict[str, 'Registry'] = {}
        # type names currently being built, a repeat means the config refers to itself
        self._building_stack: List[str] = []

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self):
        return f"Registry(name={self._name}, entries={sorted(self._entries)}, children={sorted(self._children)})"

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries

    def __getitem__(self, key):
        return self.get(key)

    def create_child(self, name: str) -> 'Registry':
        """同名子注册表只创建一次"""
        if name not in self._children:
            self._children[name] = Registry(f"{self._name}.{name}")
        return self._children[name]

    def register_module(self, name: Optional[str] = None, module: Optional[Type] = None,
                        force: bool = False) -> Callable:
        """
        用作装饰器 ``@RUNTIME.register_module()``, 或直接调用 ``RUNTIME.register_module(module=cls)``.

        Args:
            name: 登记的名字, 默认用类名
            module: 要登记的类, 为 None 时返回装饰器
            force: 允许覆盖同名条目
        """
        def _register(cls: Type) -> Type:
            key = name or cls.__name__
            if key in self._entries and not force:
                raise KeyError(f"{key} is already registered in {self._name}")
            self._entries[key] = cls
            return cls

        if module is None:
            return _register
        return _register(module)

    def get(self, key: str) -> Type:
        try:
            return self._entries[key]
        except KeyError:
            raise KeyError(f"{key} is not registered in {self._name}, available: {sorted(self._entries)}") from None

    def registered_names(self) -> List[str]:
        return list(self._entries.keys())

    def build(self, cfg: Union[Dict, DictConfig, Config], *args, **kwargs) -> Any:
        """
        根据配置构建实例, ``cfg`` 本身不会被修改.

        Args:
            cfg: 必须带 ``type`` 字段, 其余字段作为构造参数
            *args, **kwargs: 额外传给构造函数的参数
        """
        if isinstance(cfg, Config):
            params = dict(cfg.to_dict())
        elif isinstance(cfg, DictConfig):
            params = OmegaConf.to_container(cfg, resolve=True)
        elif isinstance(cfg, dict):
            params = dict(cfg)
        else:
            raise TypeError(f"{self._name} builds from a dict, DictConfig or Config, got {type(cfg).__name__}")

        if "type" not in params:
            raise KeyError(f"Config for {self._name} needs a 'type', got keys {list(params.keys())}")
        type_name = params.pop("type")

        if type_name in self._building_stack:
            raise RuntimeError(f"Cyclic dependency detected: {' -> '.join(self._building_stack + [type_name])}")
        self._building_stack.append(type_name)
        try:
            cls = self.get(type_name)
            try:
                return cls(*args, **kwargs, **params)
            except TypeError as e:
                signature = inspect.signature(cls.__init__)
                accepted = [str(p) for p in signature.parameters.values() if p.name != "self"]
                raise TypeError(f"Failed to build {type_name}: {e}\nExpected params: {', '.join(accepted)}") from e
        finally:
            self._building_stack.pop()


# bev_perception
# ├── detector     BEVObstacleDetector
# └── deploy
#     └── runtime  OnnxRuntimeEngine, TorchScriptEngine

BEV_PERCEPTION = Registry("bev_perception")

DETECTORS = BEV_PERCEPTION.create_child("detector")

DEPLOY = BEV_PERCEPTION.create_child("deploy")
RUNTIME = DEPLOY.create_child("runtime")
