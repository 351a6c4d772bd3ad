"""
安装包暂存

把传入的安装载荷变成临时目录中可供安装的程序目录，分三个可独立失败的阶段：

1. 外层解压：载荷解压到临时根目录，要么完整成功，要么不留任何输出；
2. 差分重建：若解压结果不是完整归档，则视为差分补丁，应用到已安装版本的
   完整归档缓存上，重建出新的完整归档；
3. 解包：把完整归档解包到 ``<临时根目录>/source``。

各阶段使用不同的异常类型报告失败，由上层映射为对应的安装状态。
"""

from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .. import constants
from ..layout import InstalledState
from ..utils.logging import debug, error, info, LogStage
from ..utils.paths import remove_tree
from ..version import Version, get_version_from_dir
from .compressor import CompressorFactory, DecompressionError, ZipCompressor
from .patch import PatchErrorCode, apply_diff_patch


class StagingError(Exception):
    """暂存阶段错误基类"""
    pass


class UncompressionError(StagingError):
    """外层载荷或完整归档解压失败"""
    pass


class InvalidArchiveError(StagingError):
    """解包后的目录中找不到有效的版本目录"""
    pass


class NotInstalledError(StagingError):
    """收到差分补丁，但系统上没有已安装的版本可作为基准"""
    pass


class PatchError(StagingError):
    """差分补丁重建失败，携带补丁工具的错误码"""

    def __init__(self, message: str, code: int):
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class StageResult:
    """暂存结果"""
    temp_root: Path
    source_dir: Path       # <temp_root>/source
    app_dir: Path          # <temp_root>/source/app-bin
    archive_path: Path     # 重建后的完整归档，安装后保留为差分基准
    version: Version
    incremental: bool


def uncompress_payload(payload: Path, dest_dir: Path) -> Path:
    """解压外层载荷到 dest_dir

    先解压到 dest_dir 下的独占子目录，全部成功后再移动到 dest_dir；
    失败时删除子目录，dest_dir 中不会出现部分输出。

    Returns:
        Path: 解压得到的主文件（完整归档优先，否则为第一个文件）

    Raises:
        UncompressionError: 载荷无法读取、格式无法识别、数据损坏或为空
    """
    partial = dest_dir / f".partial-{uuid.uuid4().hex}"
    moved = []
    try:
        compressor = CompressorFactory.for_payload(payload)
        with open(payload, 'rb') as f:
            extracted = compressor.decompress_to_directory(f, partial)
        if not extracted:
            raise UncompressionError(f"载荷中没有任何文件: {payload}")

        for child in sorted(partial.iterdir()):
            target = dest_dir / child.name
            if target.exists():
                raise UncompressionError(f"解压目标已存在: {target}")
            shutil.move(str(child), str(target))
            moved.append(target)
    except (DecompressionError, OSError, UncompressionError) as e:
        for target in moved:
            remove_tree(target)
        if isinstance(e, UncompressionError):
            raise
        raise UncompressionError(f"解压载荷失败 {payload}: {e}") from e
    finally:
        shutil.rmtree(partial, ignore_errors=True)

    archive = dest_dir / constants.ARCHIVE_NAME
    if archive.is_file():
        return archive
    main_file = dest_dir / extracted[0].relative_to(partial)
    return main_file


class ArchiveStager:
    """安装包暂存器"""

    def stage(self, archive_path: Path, installed: Optional[InstalledState], temp_root: Path) -> StageResult:
        """暂存安装包

        Args:
            archive_path: 外层载荷路径
            installed: 已安装状态快照；全新安装时为 None 或不带版本
            temp_root: 本次调用独占的临时根目录

        Raises:
            UncompressionError / NotInstalledError / PatchError / InvalidArchiveError
        """
        archive_path = Path(archive_path)
        info(f"解压安装包: {archive_path}", stage=LogStage.STAGE)
        unpacked = uncompress_payload(archive_path, temp_root)

        full_archive = temp_root / constants.ARCHIVE_NAME
        incremental = not full_archive.is_file()
        if incremental:
            info("检测到差分补丁，应用到已安装的完整归档", stage=LogStage.PATCH)
            if installed is None or installed.version is None:
                error("系统上没有已安装的版本，无法使用差分补丁", stage=LogStage.PATCH)
                raise NotInstalledError("无法应用差分补丁：产品未安装")

            base_archive = installed.archive_cache_path()
            code = apply_diff_patch(base_archive, unpacked, full_archive)
            if code != PatchErrorCode.OK:
                error(f"二进制补丁应用失败，错误码 {int(code)}", stage=LogStage.PATCH)
                raise PatchError(f"二进制补丁应用失败: {PatchErrorCode(code).name}", int(code))

        source_dir = temp_root / constants.INSTALL_SOURCE_DIR
        info(f"解包完整归档到 {source_dir}", stage=LogStage.UNPACK)
        try:
            with open(full_archive, 'rb') as f:
                ZipCompressor(store_only=True).decompress_to_directory(f, source_dir)
        except (DecompressionError, OSError) as e:
            error(f"解包完整归档失败: {e}", stage=LogStage.UNPACK)
            raise UncompressionError(f"解包完整归档失败: {e}") from e

        app_dir = source_dir / constants.INSTALL_SOURCE_APP_DIR
        version = get_version_from_dir(app_dir)
        if version is None:
            error("安装包中没有找到有效的版本目录", stage=LogStage.UNPACK)
            raise InvalidArchiveError(f"无效的安装包: {archive_path}")

        debug(f"待安装版本: {version}", stage=LogStage.STAGE)
        return StageResult(
            temp_root=temp_root,
            source_dir=source_dir,
            app_dir=app_dir,
            archive_path=full_archive,
            version=version,
            incremental=incremental,
        )
