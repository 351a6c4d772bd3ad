"""
二进制差分补丁

使用 Zstd 的原始内容字典（与 ``zstd --patch-from`` 相同的思路）把旧的完整归档
作为字典压缩新的完整归档，得到的帧即为差分补丁。

补丁文件格式::

    [magic:8]["ASDIFF01"]
    [base_sha256:32][target_sha256:32][target_size:8][window_log:1]
    [zstd frame]

应用补丁时先校验基准归档的哈希，再校验重建结果的哈希，保证重建出的
完整归档与真实的新版本归档逐字节一致。
"""

import hashlib
import math
import os
from enum import IntEnum
from pathlib import Path

import zstandard as zstd

from ..utils.logging import debug, error, LogStage

PATCH_MAGIC = b"ASDIFF01"
_HEADER_SIZE = 8 + 32 + 32 + 8 + 1
_MIN_WINDOW_LOG = 23
_MAX_WINDOW_LOG = 30


class PatchErrorCode(IntEnum):
    """补丁工具错误码（0 表示成功）"""
    OK = 0
    READ_FAILED = 1
    BAD_HEADER = 2
    BASE_MISMATCH = 3
    DECODE_FAILED = 4
    TARGET_MISMATCH = 5
    WRITE_FAILED = 6
    MISSING_BASE = 7


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _window_log_for(total_size: int) -> int:
    needed = math.ceil(math.log2(max(total_size, 1))) + 1
    return max(_MIN_WINDOW_LOG, min(_MAX_WINDOW_LOG, needed))


def _raw_dict(base: bytes) -> zstd.ZstdCompressionDict:
    return zstd.ZstdCompressionDict(base, dict_type=zstd.DICT_TYPE_RAWCONTENT)


def create_diff_patch(base_path: Path, target_path: Path, patch_path: Path, level: int = 19) -> int:
    """生成差分补丁

    Args:
        base_path: 旧版本完整归档
        target_path: 新版本完整归档
        patch_path: 输出补丁路径
        level: Zstd 压缩级别

    Returns:
        int: 补丁文件大小
    """
    base = Path(base_path).read_bytes()
    target = Path(target_path).read_bytes()

    window_log = _window_log_for(len(base) + len(target))
    params = zstd.ZstdCompressionParameters.from_level(
        level,
        source_size=len(target),
        window_log=window_log,
        write_content_size=1,
        write_checksum=1,
    )
    cctx = zstd.ZstdCompressor(dict_data=_raw_dict(base), compression_params=params)
    body = cctx.compress(target)

    header = (
        PATCH_MAGIC
        + _sha256(base)
        + _sha256(target)
        + len(target).to_bytes(8, 'little')
        + bytes([window_log])
    )
    patch_path = Path(patch_path)
    patch_path.parent.mkdir(parents=True, exist_ok=True)
    patch_path.write_bytes(header + body)
    debug(f"生成差分补丁 {patch_path.name}: {len(header) + len(body)} bytes", stage=LogStage.PATCH)
    return len(header) + len(body)


def apply_diff_patch(base_path: Path, patch_path: Path, output_path: Path) -> int:
    """把补丁应用到基准归档，重建完整归档

    Returns:
        int: PatchErrorCode 数值，0 表示成功；失败时不会留下输出文件
    """
    base_path, patch_path, output_path = Path(base_path), Path(patch_path), Path(output_path)

    if not base_path.is_file():
        error(f"差分基准归档不存在: {base_path}", stage=LogStage.PATCH)
        return PatchErrorCode.MISSING_BASE

    try:
        base = base_path.read_bytes()
        patch = patch_path.read_bytes()
    except OSError as e:
        error(f"读取补丁输入失败: {e}", stage=LogStage.PATCH)
        return PatchErrorCode.READ_FAILED

    if len(patch) < _HEADER_SIZE or not patch.startswith(PATCH_MAGIC):
        error(f"补丁文件头无效: {patch_path}", stage=LogStage.PATCH)
        return PatchErrorCode.BAD_HEADER

    offset = len(PATCH_MAGIC)
    base_digest = patch[offset:offset + 32]
    target_digest = patch[offset + 32:offset + 64]
    target_size = int.from_bytes(patch[offset + 64:offset + 72], 'little')
    window_log = patch[offset + 72]
    body = patch[_HEADER_SIZE:]

    if _sha256(base) != base_digest:
        error(f"基准归档与补丁不匹配: {base_path}", stage=LogStage.PATCH)
        return PatchErrorCode.BASE_MISMATCH

    if window_log > _MAX_WINDOW_LOG:
        error(f"补丁窗口大小不合法: {window_log}", stage=LogStage.PATCH)
        return PatchErrorCode.BAD_HEADER

    try:
        dctx = zstd.ZstdDecompressor(dict_data=_raw_dict(base), max_window_size=1 << window_log)
        target = dctx.decompress(body, max_output_size=target_size)
    except zstd.ZstdError as e:
        error(f"补丁解码失败: {e}", stage=LogStage.PATCH)
        return PatchErrorCode.DECODE_FAILED

    if len(target) != target_size or _sha256(target) != target_digest:
        error("重建结果校验失败", stage=LogStage.PATCH)
        return PatchErrorCode.TARGET_MISMATCH

    tmp_path = output_path.with_name(output_path.name + ".partial")
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_bytes(target)
        os.replace(tmp_path, output_path)
    except OSError as e:
        error(f"写入重建归档失败: {e}", stage=LogStage.PATCH)
        if tmp_path.exists():
            tmp_path.unlink()
        return PatchErrorCode.WRITE_FAILED

    debug(f"差分补丁应用成功: {output_path}", stage=LogStage.PATCH)
    return PatchErrorCode.OK
