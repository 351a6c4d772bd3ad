"""
安装包制作

* 完整安装包：程序目录 -> 完整归档（只存储的 Zip）-> 外层压缩载荷
* 差分安装包：新旧两个完整安装包 -> 完整归档之间的差分补丁 -> 外层压缩载荷

程序目录的结构::

    <app_dir>/
        <exe>
        <version>/...
"""

import shutil
from pathlib import Path
from typing import Optional

from .. import constants
from ..utils import format_size
from ..utils.logging import debug, info, success, LogStage
from ..utils.paths import get_temp_dir
from ..version import Version, get_version_from_dir
from .compressor import (
    CompressionAlgorithm,
    CompressionError,
    CompressorFactory,
    FileInfo,
    ProgressCallback,
    ZipCompressor,
    collect_files,
)
from .patch import create_diff_patch
from .stager import UncompressionError, uncompress_payload


class PackError(Exception):
    """安装包制作错误"""
    pass


def build_full_archive(app_dir: Path, output_path: Path, exe_name: Optional[str] = None,
                       progress_callback: Optional[ProgressCallback] = None) -> Version:
    """把程序目录打成完整归档

    Returns:
        Version: 程序目录中的版本

    Raises:
        PackError: 目录结构不正确或写入失败
    """
    app_dir = Path(app_dir)
    version = get_version_from_dir(app_dir)
    if version is None:
        raise PackError(f"程序目录中没有版本目录: {app_dir}")
    if exe_name and not (app_dir / exe_name).is_file():
        raise PackError(f"程序目录中缺少可执行文件: {app_dir / exe_name}")

    files = collect_files(app_dir, prefix=Path(constants.INSTALL_SOURCE_APP_DIR))
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(output_path, 'wb') as f:
            ZipCompressor(store_only=True).compress_files(files, f, progress_callback)
    except (CompressionError, OSError) as e:
        raise PackError(f"生成完整归档失败: {e}") from e

    debug(f"完整归档 {output_path.name}: {len(files)} 个条目", stage=LogStage.PACK)
    return version


def _compress_single(file_path: Path, archive_name: str, output_path: Path,
                     algorithm: CompressionAlgorithm, level: int) -> int:
    stat = file_path.stat()
    entry = FileInfo(file_path, Path(archive_name), stat.st_size, stat.st_mtime)
    compressor = CompressorFactory.create_compressor(algorithm, level)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(output_path, 'wb') as f:
            compressor.compress_files([entry], f)
    except (CompressionError, OSError) as e:
        raise PackError(f"压缩载荷失败 {output_path}: {e}") from e
    return output_path.stat().st_size


def build_full_payload(app_dir: Path, output_path: Path, exe_name: Optional[str] = None,
                       algorithm: CompressionAlgorithm = CompressionAlgorithm.ZSTD,
                       level: int = 10) -> Version:
    """生成完整安装包"""
    temp_dir = get_temp_dir(prefix=constants.TEMP_PREFIX)
    try:
        archive = temp_dir / constants.ARCHIVE_NAME
        version = build_full_archive(app_dir, archive, exe_name)
        size = _compress_single(archive, constants.ARCHIVE_NAME, output_path, algorithm, level)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    success(f"完整安装包 {output_path} ({version}, {format_size(size)})", stage=LogStage.PACK)
    return version


def build_patch_payload(base_file: Path, target_file: Path, output_path: Path, patch_name: str,
                        algorithm: CompressionAlgorithm = CompressionAlgorithm.ZSTD,
                        level: int = 10) -> int:
    """生成 base_file -> target_file 的补丁，并包装为外层压缩载荷

    Returns:
        int: 输出文件大小
    """
    temp_dir = get_temp_dir(prefix=constants.TEMP_PREFIX)
    try:
        patch_file = temp_dir / patch_name
        try:
            create_diff_patch(base_file, target_file, patch_file)
        except OSError as e:
            raise PackError(f"生成差分补丁失败: {e}") from e
        return _compress_single(patch_file, patch_name, output_path, algorithm, level)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def _extract_full_archive(payload: Path, dest_dir: Path) -> Path:
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        uncompress_payload(payload, dest_dir)
    except UncompressionError as e:
        raise PackError(str(e)) from e
    archive = dest_dir / constants.ARCHIVE_NAME
    if not archive.is_file():
        raise PackError(f"不是完整安装包: {payload}")
    return archive


def build_diff_payload(old_payload: Path, new_payload: Path, output_path: Path,
                       algorithm: CompressionAlgorithm = CompressionAlgorithm.ZSTD,
                       level: int = 10) -> int:
    """根据新旧两个完整安装包生成差分安装包"""
    temp_dir = get_temp_dir(prefix=constants.TEMP_PREFIX)
    try:
        old_archive = _extract_full_archive(Path(old_payload), temp_dir / "old")
        new_archive = _extract_full_archive(Path(new_payload), temp_dir / "new")
        info(f"生成差分: {old_payload} -> {new_payload}", stage=LogStage.PACK)
        size = build_patch_payload(old_archive, new_archive, output_path,
                                   constants.PATCH_NAME, algorithm, level)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    success(f"差分安装包 {output_path} ({format_size(size)})", stage=LogStage.PACK)
    return size
