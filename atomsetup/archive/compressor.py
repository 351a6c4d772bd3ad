"""
压缩器抽象接口和实现

安装载荷分两层：
- 外层载荷：Zstd 压缩的条目流（也兼容 Zip），解压后得到一个完整归档或一个差分补丁；
- 完整归档：只存储不压缩的 Zip，内容稳定，便于对其做二进制差分。
"""

import os
import zipfile
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Protocol, Union

import zstandard as zstd

from ..utils.paths import safe_path_join

ZSTD_MAGIC = b'\x28\xb5\x2f\xfd'
ZIP_MAGIC = b'PK\x03\x04'
ZIP_EMPTY_MAGIC = b'PK\x05\x06'

_CHUNK_SIZE = 64 * 1024
_MAX_PATH_LEN = 4096


class CompressionAlgorithm(str, Enum):
    """压缩算法枚举"""
    ZSTD = "zstd"
    ZIP = "zip"


class CompressionError(Exception):
    """压缩相关错误"""
    pass


class DecompressionError(Exception):
    """解压相关错误"""
    pass


@dataclass
class FileInfo:
    """归档条目信息"""
    path: Path  # 绝对路径
    relative_path: Path  # 归档内的相对路径
    size: int
    mtime: float
    is_directory: bool = False

    def to_dict(self) -> Dict[str, Union[str, int, float, bool]]:
        return {
            'path': self.relative_path.as_posix(),
            'size': self.size,
            'mtime': self.mtime,
            'is_directory': self.is_directory,
        }


def collect_files(root: Path, prefix: Optional[Path] = None) -> List[FileInfo]:
    """按稳定顺序收集目录树中的所有条目

    Args:
        root: 根目录（或单个文件）
        prefix: 归档内路径前缀

    Returns:
        List[FileInfo]: 目录条目排在其内容之前
    """
    root = Path(root)
    base = Path(prefix) if prefix else Path()

    if root.is_file():
        stat = root.stat()
        return [FileInfo(root, base / root.name, stat.st_size, stat.st_mtime)]

    if not root.is_dir():
        raise FileNotFoundError(f"输入路径不存在: {root}")

    files: List[FileInfo] = []
    if prefix:
        files.append(FileInfo(root, base, 0, root.stat().st_mtime, True))

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        current = Path(dirpath)
        rel_dir = base / current.relative_to(root)
        for name in dirnames:
            sub = current / name
            files.append(FileInfo(sub, rel_dir / name, 0, sub.stat().st_mtime, True))
        for name in sorted(filenames):
            file_path = current / name
            stat = file_path.stat()
            files.append(FileInfo(file_path, rel_dir / name, stat.st_size, stat.st_mtime))
    return files


class ProgressCallback(Protocol):
    """进度回调协议"""

    def __call__(self, current: int, total: int, current_file: Optional[str] = None) -> None:
        ...


class Compressor(ABC):
    """压缩器抽象基类"""

    @abstractmethod
    def compress_files(
        self,
        files: List[FileInfo],
        output_stream: BinaryIO,
        progress_callback: Optional[ProgressCallback] = None
    ) -> int:
        """压缩文件到流

        Returns:
            int: 写入的字节数

        Raises:
            CompressionError: 压缩失败
        """
        pass

    @abstractmethod
    def decompress_to_directory(
        self,
        input_stream: BinaryIO,
        output_dir: Path,
        progress_callback: Optional[ProgressCallback] = None
    ) -> List[Path]:
        """从流解压到目录

        Returns:
            List[Path]: 解出的文件路径（不含目录）

        Raises:
            DecompressionError: 数据损坏或条目不合法
        """
        pass

    @abstractmethod
    def get_algorithm(self) -> CompressionAlgorithm:
        pass


class ZstdCompressor(Compressor):
    """Zstd 条目流压缩器

    条目格式：``[path_len:4][path:utf8][size:8][mtime:8][is_dir:1][data]``
    """

    def __init__(self, level: int = 10):
        self.level = level
        self._cctx = zstd.ZstdCompressor(level=level, write_checksum=True)
        self._dctx = zstd.ZstdDecompressor()

    def get_algorithm(self) -> CompressionAlgorithm:
        return CompressionAlgorithm.ZSTD

    def compress_files(self, files, output_stream, progress_callback=None):
        total_bytes = sum(f.size for f in files if not f.is_directory)
        processed_bytes = 0
        try:
            with self._cctx.stream_writer(output_stream, closefd=False) as writer:
                for file_info in files:
                    if progress_callback:
                        progress_callback(processed_bytes, total_bytes, file_info.relative_path.as_posix())

                    self._write_file_header(writer, file_info)
                    if file_info.is_directory:
                        continue

                    try:
                        with open(file_info.path, 'rb') as f:
                            while True:
                                chunk = f.read(_CHUNK_SIZE)
                                if not chunk:
                                    break
                                writer.write(chunk)
                    except OSError as e:
                        raise CompressionError(f"读取文件失败 {file_info.path}: {e}") from e
                    processed_bytes += file_info.size
        except zstd.ZstdError as e:
            raise CompressionError(f"Zstd 压缩失败: {e}") from e

        return output_stream.tell() if hasattr(output_stream, 'tell') else processed_bytes

    def decompress_to_directory(self, input_stream, output_dir, progress_callback=None):
        output_dir.mkdir(parents=True, exist_ok=True)
        extracted: List[Path] = []
        decompressed_bytes = 0
        try:
            with self._dctx.stream_reader(input_stream, read_across_frames=True) as reader:
                while True:
                    file_info = self._read_file_header(reader)
                    if file_info is None:
                        break

                    if progress_callback:
                        progress_callback(decompressed_bytes, decompressed_bytes + file_info.size,
                                          file_info.relative_path.as_posix())

                    target = safe_path_join(output_dir, file_info.relative_path)
                    if file_info.is_directory:
                        target.mkdir(parents=True, exist_ok=True)
                        continue

                    target.parent.mkdir(parents=True, exist_ok=True)
                    with open(target, 'wb') as f:
                        remaining = file_info.size
                        while remaining > 0:
                            chunk = reader.read(min(_CHUNK_SIZE, remaining))
                            if not chunk:
                                raise DecompressionError(f"条目数据被截断: {file_info.relative_path}")
                            f.write(chunk)
                            remaining -= len(chunk)
                    os.utime(target, (file_info.mtime, file_info.mtime))
                    extracted.append(target)
                    decompressed_bytes += file_info.size
        except zstd.ZstdError as e:
            raise DecompressionError(f"Zstd 解压失败: {e}") from e
        except ValueError as e:
            raise DecompressionError(f"归档条目不合法: {e}") from e

        return extracted

    def _write_file_header(self, writer: BinaryIO, file_info: FileInfo) -> None:
        path_bytes = file_info.relative_path.as_posix().encode('utf-8')
        size = 0 if file_info.is_directory else file_info.size

        writer.write(len(path_bytes).to_bytes(4, 'little'))
        writer.write(path_bytes)
        writer.write(size.to_bytes(8, 'little'))
        writer.write(int(file_info.mtime).to_bytes(8, 'little'))
        writer.write(b'\x01' if file_info.is_directory else b'\x00')

    def _read_exact(self, reader: BinaryIO, size: int) -> bytes:
        data = b''
        while len(data) < size:
            chunk = reader.read(size - len(data))
            if not chunk:
                break
            data += chunk
        return data

    def _read_file_header(self, reader: BinaryIO) -> Optional[FileInfo]:
        """读取条目头；流在条目边界结束时返回 None"""
        path_len_bytes = self._read_exact(reader, 4)
        if not path_len_bytes:
            return None
        if len(path_len_bytes) != 4:
            raise DecompressionError("条目头被截断")

        path_len = int.from_bytes(path_len_bytes, 'little')
        if path_len <= 0 or path_len > _MAX_PATH_LEN:
            raise DecompressionError(f"条目路径长度不合法: {path_len}")

        path_bytes = self._read_exact(reader, path_len)
        rest = self._read_exact(reader, 17)
        if len(path_bytes) != path_len or len(rest) != 17:
            raise DecompressionError("条目头被截断")

        try:
            path = Path(path_bytes.decode('utf-8'))
        except UnicodeDecodeError as e:
            raise DecompressionError(f"条目路径编码错误: {e}") from e

        return FileInfo(
            path=path,
            relative_path=path,
            size=int.from_bytes(rest[0:8], 'little'),
            mtime=float(int.from_bytes(rest[8:16], 'little')),
            is_directory=rest[16] != 0,
        )


class ZipCompressor(Compressor):
    """Zip 压缩器

    ``store_only=True`` 时只存储不压缩，用于生成完整归档。
    """

    def __init__(self, level: int = 6, store_only: bool = False):
        self.level = min(9, max(1, level))
        self.store_only = store_only

    def get_algorithm(self) -> CompressionAlgorithm:
        return CompressionAlgorithm.ZIP

    def compress_files(self, files, output_stream, progress_callback=None):
        total_bytes = sum(f.size for f in files if not f.is_directory)
        processed_bytes = 0
        method = zipfile.ZIP_STORED if self.store_only else zipfile.ZIP_DEFLATED
        level = None if self.store_only else self.level

        try:
            with zipfile.ZipFile(output_stream, 'w', method, compresslevel=level) as zf:
                for file_info in files:
                    if progress_callback:
                        progress_callback(processed_bytes, total_bytes, file_info.relative_path.as_posix())

                    archive_path = file_info.relative_path.as_posix()
                    if file_info.is_directory:
                        zf.writestr(zipfile.ZipInfo(archive_path.rstrip('/') + '/'), b'')
                        continue

                    try:
                        zf.write(file_info.path, archive_path)
                    except OSError as e:
                        raise CompressionError(f"添加文件到 Zip 失败 {file_info.path}: {e}") from e
                    processed_bytes += file_info.size
        except (zipfile.BadZipFile, ValueError) as e:
            raise CompressionError(f"Zip 压缩失败: {e}") from e

        return output_stream.tell() if hasattr(output_stream, 'tell') else processed_bytes

    def decompress_to_directory(self, input_stream, output_dir, progress_callback=None):
        output_dir.mkdir(parents=True, exist_ok=True)
        extracted: List[Path] = []
        decompressed_bytes = 0

        try:
            with zipfile.ZipFile(input_stream, 'r') as zf:
                total_size = sum(info.file_size for info in zf.infolist())
                for info in zf.infolist():
                    if progress_callback:
                        progress_callback(decompressed_bytes, total_size, info.filename)

                    extract_path = safe_path_join(output_dir, info.filename)
                    if info.is_dir():
                        extract_path.mkdir(parents=True, exist_ok=True)
                        continue

                    extract_path.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(extract_path, 'wb') as dst:
                        while True:
                            chunk = src.read(_CHUNK_SIZE)
                            if not chunk:
                                break
                            dst.write(chunk)
                    extracted.append(extract_path)
                    decompressed_bytes += info.file_size
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, zlib.error, NotImplementedError) as e:
            raise DecompressionError(f"Zip 解压失败: {e}") from e
        except ValueError as e:
            raise DecompressionError(f"归档条目不合法: {e}") from e

        return extracted


def detect_algorithm(path: Path) -> CompressionAlgorithm:
    """根据文件头魔数判断载荷的压缩算法

    Raises:
        DecompressionError: 无法识别的文件格式
    """
    try:
        with open(path, 'rb') as f:
            magic = f.read(4)
    except OSError as e:
        raise DecompressionError(f"无法读取载荷 {path}: {e}") from e

    if magic == ZSTD_MAGIC:
        return CompressionAlgorithm.ZSTD
    if magic in (ZIP_MAGIC, ZIP_EMPTY_MAGIC):
        return CompressionAlgorithm.ZIP
    raise DecompressionError(f"无法识别的载荷格式: {path}")


class CompressorFactory:
    """压缩器工厂"""

    @staticmethod
    def create_compressor(algorithm: CompressionAlgorithm, level: int = 10) -> Compressor:
        if algorithm == CompressionAlgorithm.ZSTD:
            return ZstdCompressor(level)
        if algorithm == CompressionAlgorithm.ZIP:
            return ZipCompressor(level)
        raise CompressionError(f"不支持的压缩算法: {algorithm}")

    @staticmethod
    def for_payload(path: Path) -> Compressor:
        """为已有载荷文件选择解压器"""
        return CompressorFactory.create_compressor(detect_algorithm(path))

    @staticmethod
    def get_available_algorithms() -> List[CompressionAlgorithm]:
        return [CompressionAlgorithm.ZSTD, CompressionAlgorithm.ZIP]
