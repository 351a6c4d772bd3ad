"""
版本号模型

版本号是由非负整数组成的有序元组（例如 ``1.2.3.4``），解析后不可变，
支持全序比较。缺失的尾部分量按 0 处理，因此 ``1.0`` 与 ``1.0.0.0`` 相等。
"""

from __future__ import annotations

import re
from functools import total_ordering
from pathlib import Path
from typing import Iterable, Optional, Tuple

_VERSION_PATTERN = re.compile(r'^\d+(\.\d+)*$')


@total_ordering
class Version:
    """不可变版本号"""

    __slots__ = ("_components",)

    def __init__(self, components: Iterable[int]):
        parts = tuple(int(c) for c in components)
        if not parts or any(c < 0 for c in parts):
            raise ValueError(f"无效的版本号分量: {parts}")
        object.__setattr__(self, "_components", parts)

    def __setattr__(self, name, value):
        raise AttributeError("Version 对象不可修改")

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["Version"]:
        """解析版本字符串，格式不正确时返回 None"""
        if text is None:
            return None
        text = str(text).strip()
        if not _VERSION_PATTERN.match(text):
            return None
        return cls(int(part) for part in text.split('.'))

    @property
    def components(self) -> Tuple[int, ...]:
        return self._components

    def _padded(self, length: int) -> Tuple[int, ...]:
        return self._components + (0,) * (length - len(self._components))

    def _key_pair(self, other: "Version") -> Tuple[Tuple[int, ...], Tuple[int, ...]]:
        length = max(len(self._components), len(other._components))
        return self._padded(length), other._padded(length)

    def is_higher_than(self, other: "Version") -> bool:
        mine, theirs = self._key_pair(other)
        return mine > theirs

    def __eq__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        mine, theirs = self._key_pair(other)
        return mine == theirs

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        mine, theirs = self._key_pair(other)
        return mine < theirs

    def __hash__(self) -> int:
        trimmed = list(self._components)
        while len(trimmed) > 1 and trimmed[-1] == 0:
            trimmed.pop()
        return hash(tuple(trimmed))

    def __str__(self) -> str:
        return ".".join(str(c) for c in self._components)

    def __repr__(self) -> str:
        return f"Version('{self}')"


def get_version_from_dir(path: Path) -> Optional[Version]:
    """在目录中查找名称为版本号的子目录，返回其中最高的版本

    Args:
        path: 待扫描目录（解包后的程序目录）

    Returns:
        Optional[Version]: 找不到任何版本目录时返回 None
    """
    if not path.is_dir():
        return None

    found = None
    for child in path.iterdir():
        if not child.is_dir():
            continue
        version = Version.parse(child.name)
        if version is not None and (found is None or version.is_higher_than(found)):
            found = version
    return found
