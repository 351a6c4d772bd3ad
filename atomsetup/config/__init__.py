"""安装选项模块

提供安装选项模型和 YAML 安装偏好文件的加载。
"""

from .schema import InstallerOptions, Operation
from .loader import (
    ConfigLoader,
    ConfigValidationError,
    ConfigError,
    load_options,
    config_loader,
)

__all__ = [
    "InstallerOptions",
    "Operation",
    "ConfigLoader",

    # 异常类
    "ConfigError",
    "ConfigValidationError",

    "load_options",
    "config_loader",
]
