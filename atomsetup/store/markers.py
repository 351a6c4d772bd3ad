"""
标记存储

以作用域（系统级/用户级）划分的键值存储，承担注册表的职责：
版本标记、待替换旧版本标记、待执行重命名命令标记、安装结果等都写在这里。
每个作用域下是 ``key -> {name: value}`` 的两级结构。
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from ..utils.logging import debug, LogStage

MarkerValue = Union[str, int]


class Scope(str, Enum):
    """安装作用域"""
    SYSTEM = "system"
    USER = "user"

    @classmethod
    def for_level(cls, system_level: bool) -> "Scope":
        return cls.SYSTEM if system_level else cls.USER

    def other(self) -> "Scope":
        return Scope.USER if self is Scope.SYSTEM else Scope.SYSTEM


class MarkerStoreError(Exception):
    """标记存储读写错误"""
    pass


class MarkerStore(ABC):
    """标记存储抽象基类"""

    @abstractmethod
    def get_value(self, scope: Scope, key: str, name: str) -> Optional[MarkerValue]:
        """读取值，不存在时返回 None"""
        pass

    @abstractmethod
    def set_value(self, scope: Scope, key: str, name: str, value: MarkerValue) -> None:
        pass

    @abstractmethod
    def delete_value(self, scope: Scope, key: str, name: str) -> bool:
        """删除值

        Returns:
            bool: 值原本存在并被删除时为 True
        """
        pass

    @abstractmethod
    def get_values(self, scope: Scope, key: str) -> Dict[str, MarkerValue]:
        pass

    @abstractmethod
    def delete_key(self, scope: Scope, key: str) -> bool:
        pass

    def key_exists(self, scope: Scope, key: str) -> bool:
        return bool(self.get_values(scope, key))


class MemoryMarkerStore(MarkerStore):
    """内存实现，用于测试和一次性运行"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, MarkerValue]]] = {s.value: {} for s in Scope}

    def get_value(self, scope, key, name):
        return self._data[Scope(scope).value].get(key, {}).get(name)

    def set_value(self, scope, key, name, value):
        self._data[Scope(scope).value].setdefault(key, {})[name] = value

    def delete_value(self, scope, key, name):
        values = self._data[Scope(scope).value].get(key)
        if values is None or name not in values:
            return False
        del values[name]
        if not values:
            del self._data[Scope(scope).value][key]
        return True

    def get_values(self, scope, key):
        return dict(self._data[Scope(scope).value].get(key, {}))

    def delete_key(self, scope, key):
        return self._data[Scope(scope).value].pop(key, None) is not None


class JsonMarkerStore(MarkerStore):
    """JSON 文件实现

    每个作用域一个文件（``<state_dir>/<scope>.json``），
    每次修改都通过临时文件 + ``os.replace`` 原子地落盘。
    """

    def __init__(self, state_dir: Union[str, Path]):
        self.state_dir = Path(state_dir)

    def _path(self, scope: Scope) -> Path:
        return self.state_dir / f"{Scope(scope).value}.json"

    def _load(self, scope: Scope) -> Dict[str, Dict[str, MarkerValue]]:
        path = self._path(scope)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            raise MarkerStoreError(f"读取标记存储失败 {path}: {e}") from e
        if not isinstance(data, dict):
            raise MarkerStoreError(f"标记存储格式错误 {path}: 根级别必须是对象")
        return data

    def _save(self, scope: Scope, data: Dict[str, Dict[str, MarkerValue]]) -> None:
        path = self._path(scope)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        except OSError as e:
            raise MarkerStoreError(f"写入标记存储失败 {path}: {e}") from e
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise MarkerStoreError(f"写入标记存储失败 {path}: {e}") from e
        debug(f"标记存储已保存: {path}", stage=LogStage.STORE)

    def get_value(self, scope, key, name):
        return self._load(scope).get(key, {}).get(name)

    def set_value(self, scope, key, name, value):
        data = self._load(scope)
        data.setdefault(key, {})[name] = value
        self._save(scope, data)

    def delete_value(self, scope, key, name):
        data = self._load(scope)
        values = data.get(key)
        if values is None or name not in values:
            return False
        del values[name]
        if not values:
            del data[key]
        self._save(scope, data)
        return True

    def get_values(self, scope, key):
        return dict(self._load(scope).get(key, {}))

    def delete_key(self, scope, key):
        data = self._load(scope)
        if key not in data:
            return False
        del data[key]
        self._save(scope, data)
        return True
