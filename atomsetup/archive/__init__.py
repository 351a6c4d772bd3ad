"""安装包模块

外层压缩载荷、完整归档、差分补丁，以及安装时的暂存流程。
"""

from .compressor import (
    CompressionAlgorithm,
    CompressionError,
    CompressorFactory,
    DecompressionError,
    ZipCompressor,
    ZstdCompressor,
)
from .patch import PatchErrorCode, apply_diff_patch, create_diff_patch
from .stager import (
    ArchiveStager,
    InvalidArchiveError,
    NotInstalledError,
    PatchError,
    StageResult,
    StagingError,
    UncompressionError,
    uncompress_payload,
)
from .packer import PackError, build_diff_payload, build_full_archive, build_full_payload, build_patch_payload

__all__ = [
    "CompressionAlgorithm",
    "CompressionError",
    "CompressorFactory",
    "DecompressionError",
    "ZipCompressor",
    "ZstdCompressor",
    "PatchErrorCode",
    "apply_diff_patch",
    "create_diff_patch",
    "ArchiveStager",
    "InvalidArchiveError",
    "NotInstalledError",
    "PatchError",
    "StageResult",
    "StagingError",
    "UncompressionError",
    "uncompress_payload",
    "PackError",
    "build_diff_payload",
    "build_full_archive",
    "build_full_payload",
    "build_patch_payload",
]
