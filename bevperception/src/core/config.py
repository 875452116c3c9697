import os
import yaml
import json
import inspect
import importlib.util
from typing import Any, Dict, List, Optional, Sequence, Union
from omegaconf import OmegaConf, DictConfig


class Config:
    """
    文件驱动的嵌套配置, 支持 .py / .yaml / .yml / .json.

    嵌套字典会变成子 Config, 所以既可以 ``cfg.runtime.engine.type`` 也可以 ``cfg['runtime']``.
    合并与命令行覆盖都交给 OmegaConf 处理.
    """

    SUPPORTED_SUFFIXES = ('.py', '.yaml', '.yml', '.json')

    def __init__(self, cfg_dict: Optional[Dict] = None, filename: Optional[str] = None):
        """
        Args:
            cfg_dict: 直接传入的配置字典, 优先于 filename
            filename: 配置文件路径
        """
        if cfg_dict is None and filename is not None:
            cfg_dict = self._load_dict(filename)
        self._cfg_dict: Dict = {}
        self._assign(cfg_dict or {})

    def _assign(self, cfg_dict: Dict):
        # 先清掉旧字段对应的属性, 避免残留
        for key in self._cfg_dict:
            self.__dict__.pop(key, None)
        self._cfg_dict = {}
        for key, value in cfg_dict.items():
            self._set(key, value)
        self._cfg_omega = OmegaConf.create(self._cfg_dict)

    def _set(self, key: str, value: Any):
        if isinstance(value, dict):
            value = Config(value)
        setattr(self, key, value)
        self._cfg_dict[key] = value._cfg_dict if isinstance(value, Config) else value

    @staticmethod
    def _load_dict(filename: str) -> Dict:
        suffix = os.path.splitext(filename)[1].lower()
        if suffix not in Config.SUPPORTED_SUFFIXES:
            raise ValueError(f'Unsupported config file type: {suffix}, expected one of {Config.SUPPORTED_SUFFIXES}')
        if not os.path.isfile(filename):
            raise FileNotFoundError(f"Config file not found: {filename}")

        if suffix == '.py':
            return Config._parse_py_file(filename)
        with open(filename, 'r', encoding='utf-8') as f:
            if suffix == '.json':
                return json.load(f)
            return yaml.safe_load(f) or {}

    @staticmethod
    def _parse_py_file(filename: str) -> Dict:
        """执行 python 配置文件, 收集其中的公开变量"""
        module_name = os.path.splitext(os.path.basename(filename))[0]
        module_spec = importlib.util.spec_from_file_location(module_name, filename)
        module = importlib.util.module_from_spec(module_spec)
        module_spec.loader.exec_module(module)

        return {
            key: value for key, value in vars(module).items()
            if not key.startswith('_') and not inspect.ismodule(value) and not callable(value)
        }

    @classmethod
    def from_file(cls, filename: str) -> 'Config':
        return cls(cfg_dict=cls._load_dict(filename))

    @classmethod
    def from_files(cls, filenames: Union[Sequence[str], str]) -> 'Config':
        """后面的文件覆盖前面文件里的同名字段"""
        if isinstance(filenames, str):
            filenames = [filenames]
        merged = OmegaConf.create({})
        for filename in filenames:
            merged = OmegaConf.merge(merged, OmegaConf.create(cls._load_dict(filename)))
        return cls(OmegaConf.to_container(merged, resolve=True))

    def __getitem__(self, key: str) -> Any:
        return self._cfg_dict[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._set(key, value)
        self._cfg_omega = OmegaConf.create(self._cfg_dict)

    def __contains__(self, key: str) -> bool:
        return key in self._cfg_dict

    def keys(self):
        return self._cfg_dict.keys()

    def get(self, key: str, default: Any = None) -> Any:
        return self._cfg_dict.get(key, default)

    def update(self, cfg_dict: Dict) -> None:
        """深度合并, cfg_dict 中没有出现的字段保持不变"""
        merged = OmegaConf.merge(self._cfg_omega, OmegaConf.create(cfg_dict))
        self._assign(OmegaConf.to_container(merged, resolve=True))

    def merge_overrides(self, overrides: Optional[List[str]]) -> 'Config':
        """命令行形式的覆盖项, 格式: section.key=value"""
        if overrides:
            self.update(OmegaConf.to_container(OmegaConf.from_dotlist(list(overrides)), resolve=True))
        return self

    def to_dict(self) -> Dict:
        return self._cfg_dict

    @property
    def config(self) -> DictConfig:
        return self._cfg_omega

    def save_to_file(self, filename: str) -> None:
        suffix = os.path.splitext(filename)[1].lower()
        if suffix not in ('.yaml', '.yml', '.json'):
            raise ValueError(f'Unsupported config file type for saving: {suffix}')
        os.makedirs(os.path.dirname(os.path.abspath(filename)), exist_ok=True)

        with open(filename, 'w', encoding='utf-8') as f:
            if suffix == '.json':
                json.dump(self._cfg_dict, f, indent=2)
            else:
                yaml.safe_dump(self._cfg_dict, f, default_flow_style=False, sort_keys=False)

    def __repr__(self) -> str:
        return f"Config({self._cfg_dict!r})"

    def __str__(self) -> str:
        return OmegaConf.to_yaml(self._cfg_omega)
