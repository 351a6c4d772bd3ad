"""
路径工具

提供路径处理、临时目录、目录树比较与删除相关的工具函数。
"""

import filecmp
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union


def get_temp_dir(prefix: str = "atomsetup_", parent: Optional[Path] = None) -> Path:
    """创建一个全新的临时目录

    每次调用都会得到一个独占的新目录，不会复用已有目录。

    Args:
        prefix: 目录前缀
        parent: 父目录，默认使用系统临时目录

    Returns:
        Path: 临时目录路径

    Raises:
        OSError: 无法创建目录
    """
    return Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent) if parent else None))


def safe_path_join(*parts: Union[str, Path]) -> Path:
    """安全的路径拼接（防止目录穿越）

    Raises:
        ValueError: 检测到目录穿越或绝对路径
    """
    if not parts:
        return Path(".")

    result = Path(parts[0])

    for part in parts[1:]:
        part_path = Path(part)

        if any(p == ".." for p in part_path.parts):
            raise ValueError(f"检测到目录穿越尝试: {part}")

        if part_path.is_absolute():
            raise ValueError(f"不允许使用绝对路径: {part}")

        result = result / part_path

    return result


def format_size(size_bytes: int) -> str:
    """格式化文件大小"""
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


def is_safe_filename(filename: str) -> bool:
    """检查文件名是否安全（同时满足 Windows 的命名限制）"""
    illegal_chars = '<>:"/\\|?*'

    if not filename or any(char in filename for char in illegal_chars):
        return False

    reserved_names = {
        'CON', 'PRN', 'AUX', 'NUL',
        'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
        'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
    }

    if filename.split('.')[0].upper() in reserved_names:
        return False

    return len(filename) <= 255


def trees_equal(left: Path, right: Path) -> bool:
    """按内容比较两个文件或目录树

    目录要求条目名称完全一致，文件逐字节比较。
    """
    if left.is_file() or right.is_file():
        if not (left.is_file() and right.is_file()):
            return False
        return filecmp.cmp(left, right, shallow=False)

    if not (left.is_dir() and right.is_dir()):
        return False

    left_names = sorted(p.name for p in left.iterdir())
    right_names = sorted(p.name for p in right.iterdir())
    if left_names != right_names:
        return False

    return all(trees_equal(left / name, right / name) for name in left_names)


def remove_tree(path: Path) -> bool:
    """删除文件或目录树

    Returns:
        bool: 删除后路径不存在即为 True（路径原本不存在也返回 True）
    """
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
    except OSError:
        return False
    return not os.path.lexists(path)
