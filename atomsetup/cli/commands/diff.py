"""
Diff 命令实现

根据新旧两个完整安装包生成差分安装包；``--setup`` 模式下对任意两个文件
（通常是新旧两个安装程序）生成安装程序补丁载荷。
"""

from pathlib import Path

import typer
from rich.console import Console

from ... import constants
from ...archive import PackError, build_diff_payload, build_patch_payload
from ...utils import format_size
from ...utils.logging import set_log_level, OutputLevel


console = Console()


def diff_command(
    old: str = typer.Option(..., "--old", help="旧版本完整安装包（或旧安装程序）"),
    new: str = typer.Option(..., "--new", help="新版本完整安装包（或新安装程序）"),
    output: str = typer.Option(..., "--output", "-o", help="输出路径"),
    setup: bool = typer.Option(False, "--setup", help="生成安装程序补丁，而不是差分安装包"),
    force: bool = typer.Option(False, "--force", "-f", help="强制覆盖已存在的输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """生成差分安装包

    示例:
        atomsetup diff --old app-1.0.packed.zst --new app-1.1.packed.zst -o app_patch.packed.zst
        atomsetup diff --setup --old setup-1.0.exe --new setup-1.1.exe -o setup_patch.packed.zst
    """
    set_log_level(OutputLevel.DEBUG if verbose else OutputLevel.INFO)
    old_path, new_path, output_path = Path(old), Path(new), Path(output)

    for path in (old_path, new_path):
        if not path.is_file():
            console.print(f"[red]文件不存在: {path}[/red]")
            raise typer.Exit(1)

    if output_path.exists() and not force:
        console.print(f"[red]输出文件已存在: {output_path}[/red]")
        console.print("使用 --force 参数强制覆盖")
        raise typer.Exit(1)

    try:
        if setup:
            size = build_patch_payload(old_path, new_path, output_path, constants.SETUP_PATCH_NAME)
        else:
            size = build_diff_payload(old_path, new_path, output_path)
    except PackError as e:
        console.print(f"[red]✗ 生成差分失败[/red]: {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ 已生成[/green]: {output_path} ({format_size(size)})")
