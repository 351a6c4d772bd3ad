"""
日志工具 - 统一输出门面

封装 Rich Console，为安装引擎的各个阶段提供带时间戳、带阶段标记的输出，
可选同时写入日志文件。安装器运行在无人值守的环境中时，日志文件是唯一的
诊断来源，因此所有阶段都通过这里输出。
"""

import atexit
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Union, Any

from rich.console import Console
from rich.markup import escape


class OutputLevel:
    """输出级别常量"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogStage:
    """日志阶段标记"""
    INIT = "INIT"
    RESOLVE = "RESOLVE"
    STAGE = "STAGE"
    PATCH = "PATCH"
    UNPACK = "UNPACK"
    EXECUTE = "EXECUTE"
    ROLLBACK = "ROLLBACK"
    DECIDE = "DECIDE"
    CLEANUP = "CLEANUP"
    RENAME = "RENAME"
    UNINSTALL = "UNINSTALL"
    STORE = "STORE"
    PACK = "PACK"
    COMPLETE = "COMPLETE"


_LEVEL_ORDER = {
    OutputLevel.DEBUG: 0,
    OutputLevel.INFO: 1,
    OutputLevel.SUCCESS: 1,
    OutputLevel.WARNING: 2,
    OutputLevel.ERROR: 3,
}

_LEVEL_STYLES = {
    OutputLevel.DEBUG: "dim",
    OutputLevel.INFO: "default",
    OutputLevel.SUCCESS: "green",
    OutputLevel.WARNING: "yellow",
    OutputLevel.ERROR: "red bold",
}


class OutputFacade:
    """输出门面

    统一封装所有输出操作。控制台输出走 Rich（错误走 stderr），
    文件输出使用带日期的纯文本格式。
    """

    def __init__(self):
        self._lock = threading.RLock()
        # 不绑定具体的流对象，每次输出时取当前的 sys.stdout / sys.stderr
        self._console = Console(highlight=False, log_time=False, log_path=False)
        self._error_console = Console(stderr=True, highlight=False)
        self._file_handle = None  # type: Optional[Any]
        self._log_level = OutputLevel.INFO
        self._date_format = "%Y-%m-%d %H:%M:%S"
        self._time_format = "%H:%M:%S"

    @property
    def level(self) -> str:
        return self._log_level

    def _get_timestamp(self, include_date: bool = False) -> str:
        now = datetime.now()
        return now.strftime(self._date_format if include_date else self._time_format)

    def _should_output(self, level: str) -> bool:
        current_level = _LEVEL_ORDER.get(self._log_level, 1)
        return _LEVEL_ORDER.get(level, 1) >= current_level

    def _format_message(self, message: str, level: str, stage: Optional[str] = None,
                        include_date: bool = False) -> str:
        timestamp = self._get_timestamp(include_date)
        if stage:
            return f"[{timestamp}] [{level}] [{stage}] {message}"
        return f"[{timestamp}] [{level}] {message}"

    def _write_console(self, message: str, level: str, stage: Optional[str]) -> None:
        timestamp = self._get_timestamp()
        console = self._error_console if level == OutputLevel.ERROR else self._console
        if stage:
            formatted = f"[dim]{timestamp}[/dim] [bold]{level}[/bold] [cyan]{stage}[/cyan] {message}"
        else:
            formatted = f"[dim]{timestamp}[/dim] [bold]{level}[/bold] {message}"
        console.print(formatted, style=_LEVEL_STYLES.get(level, "default"), markup=True,
                      emoji=False, soft_wrap=True)

    def _write_to_file(self, message: str, level: str, stage: Optional[str] = None) -> None:
        if not self._file_handle:
            return
        try:
            self._file_handle.write(self._format_message(message, level, stage, include_date=True) + "\n")
            self._file_handle.flush()
        except OSError:
            # 日志文件写入失败不能影响安装结果
            self._file_handle = None

    def emit(self, message: str, level: str, stage: Optional[str] = None) -> None:
        if not self._should_output(level):
            return
        with self._lock:
            self._write_console(escape(message), level, stage)
            self._write_to_file(message, level, stage)

    def set_level(self, level: str) -> None:
        with self._lock:
            if level in _LEVEL_ORDER:
                self._log_level = level

    def set_log_file(self, file_path: Union[str, Path]) -> None:
        with self._lock:
            self.close()
            try:
                log_path = Path(file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
                self._file_handle = open(log_path, 'a', encoding='utf-8')
            except OSError as e:
                self.emit(f"无法打开日志文件 {file_path}: {e}", OutputLevel.WARNING)

    def close(self) -> None:
        with self._lock:
            if self._file_handle:
                try:
                    self._file_handle.close()
                except OSError:
                    pass
                self._file_handle = None


_output_facade: Optional[OutputFacade] = None


def get_output_facade() -> OutputFacade:
    """获取全局输出门面实例"""
    global _output_facade
    if _output_facade is None:
        _output_facade = OutputFacade()
    return _output_facade


def debug(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().emit(message, OutputLevel.DEBUG, stage)


def info(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().emit(message, OutputLevel.INFO, stage)


def success(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().emit(message, OutputLevel.SUCCESS, stage)


def warning(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().emit(message, OutputLevel.WARNING, stage)


def error(message: str, stage: Optional[str] = None) -> None:
    get_output_facade().emit(message, OutputLevel.ERROR, stage)


def set_log_level(level: str) -> None:
    """设置全局日志级别"""
    get_output_facade().set_level(level)


def set_log_file(file_path: Union[str, Path]) -> None:
    """设置全局日志文件"""
    get_output_facade().set_log_file(file_path)


def close_logger() -> None:
    """关闭日志系统"""
    global _output_facade
    if _output_facade:
        _output_facade.close()
        _output_facade = None


def configure_logging(level: str = OutputLevel.INFO, log_file: Optional[Union[str, Path]] = None) -> None:
    """配置日志系统

    Args:
        level: 输出级别（DEBUG/INFO/WARNING/ERROR）
        log_file: 可选的日志文件路径（追加写入）
    """
    set_log_level(level)
    if log_file:
        set_log_file(log_file)


atexit.register(close_logger)
