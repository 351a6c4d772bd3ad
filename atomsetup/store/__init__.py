"""标记存储模块

提供按作用域划分的键值标记存储，以及安装结果写入工具。
"""

from .markers import (
    JsonMarkerStore,
    MarkerStore,
    MarkerStoreError,
    MarkerValue,
    MemoryMarkerStore,
    Scope,
)
from .results import update_diff_install_status, write_installer_result

__all__ = [
    "JsonMarkerStore",
    "MarkerStore",
    "MarkerStoreError",
    "MarkerValue",
    "MemoryMarkerStore",
    "Scope",
    "update_diff_install_status",
    "write_installer_result",
]
