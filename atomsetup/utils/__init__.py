"""通用工具模块"""

from .logging import (
    configure_logging,
    LogStage,
    OutputLevel,
    debug,
    info,
    success,
    warning,
    error,
)

from .paths import (
    get_temp_dir,
    safe_path_join,
    format_size,
    is_safe_filename,
    trees_equal,
    remove_tree,
)

__all__ = [
    # 日志相关
    "configure_logging",
    "LogStage",
    "OutputLevel",
    "debug",
    "info",
    "success",
    "warning",
    "error",

    # 路径相关
    "get_temp_dir",
    "safe_path_join",
    "format_size",
    "is_safe_filename",
    "trees_equal",
    "remove_tree",
]
