"""
Pack 命令实现

把程序目录打成完整安装包。
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ...archive import CompressionAlgorithm, PackError, build_full_payload
from ...utils.logging import set_log_level, OutputLevel


console = Console()


def pack_command(
    app_dir: str = typer.Argument(..., help="程序目录（包含主程序和版本目录）"),
    output: str = typer.Option(..., "--output", "-o", help="输出安装包路径"),
    exe_name: Optional[str] = typer.Option(None, "--exe-name", help="检查程序目录中是否包含该主程序"),
    algo: CompressionAlgorithm = typer.Option(CompressionAlgorithm.ZSTD, "--algo", help="外层压缩算法"),
    level: int = typer.Option(10, "--level", "-l", min=1, max=22, help="压缩级别"),
    force: bool = typer.Option(False, "--force", "-f", help="强制覆盖已存在的输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """生成完整安装包

    示例:
        atomsetup pack ./dist/app-bin -o app.packed.zst --exe-name atomapp.exe
    """
    set_log_level(OutputLevel.DEBUG if verbose else OutputLevel.INFO)
    source = Path(app_dir)
    output_path = Path(output)

    if not source.is_dir():
        console.print(f"[red]程序目录不存在: {source}[/red]")
        raise typer.Exit(1)

    if output_path.exists() and not force:
        console.print(f"[red]输出文件已存在: {output_path}[/red]")
        console.print("使用 --force 参数强制覆盖")
        raise typer.Exit(1)

    try:
        version = build_full_payload(source, output_path, exe_name, algo, level)
    except PackError as e:
        console.print(f"[red]✗ 打包失败[/red]: {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ 完整安装包已生成[/green]: {output_path}")
    console.print(f"[blue]版本[/blue]: {version}")
