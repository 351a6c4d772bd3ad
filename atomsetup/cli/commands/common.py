"""
命令共用的选项处理

安装类命令都先合并安装偏好文件与命令行参数得到安装选项，然后交给
``setup_main`` 执行，进程退出码即安装状态映射出的返回码。
"""

from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from ...config import ConfigError, ConfigValidationError, InstallerOptions, load_options
from ...setup_main import run_setup
from ...utils.logging import set_log_file, set_log_level, OutputLevel


console = Console()


def setup_logging(verbose: bool, log_file: Optional[str]) -> None:
    """初始化日志：在任何输出前设置"""
    set_log_level(OutputLevel.DEBUG if verbose else OutputLevel.INFO)
    if log_file:
        set_log_file(log_file)


def _print_validation_errors(e: ConfigValidationError) -> None:
    console.print("[red]安装选项验证失败:[/red]")
    table = Table(title="验证错误")
    table.add_column("位置", style="cyan", no_wrap=True)
    table.add_column("错误信息", style="red")
    for error in e.errors:
        location = " -> ".join(str(item) for item in error.get('loc', []))
        table.add_row(location or "根级别", error.get('msg', '未知错误'))
    console.print(table)


def build_options(installer_data: Optional[str], **overrides: Any) -> InstallerOptions:
    """合并安装偏好文件与命令行参数；选项无效时以退出码 1 结束"""
    prefs_path = Path(installer_data) if installer_data else None
    try:
        return load_options(prefs_path, **overrides)
    except ConfigValidationError as e:
        _print_validation_errors(e)
        raise typer.Exit(1)
    except ConfigError as e:
        console.print(f"[red]配置错误[/red]: {e}")
        raise typer.Exit(1)


def execute(options: InstallerOptions) -> None:
    """执行安装器调用，并以安装返回码退出"""
    code = run_setup(options)
    raise typer.Exit(code)
