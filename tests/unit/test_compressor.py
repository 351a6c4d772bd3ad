"""
压缩器单元测试

测试 Zstd 条目流与 Zip 两种载荷格式的压缩、解压与错误处理。
"""

import io
import os
import zipfile
from pathlib import Path

import pytest
import zstandard as zstd

from atomsetup.archive.compressor import (
    CompressionAlgorithm,
    CompressionError,
    CompressorFactory,
    DecompressionError,
    FileInfo,
    ZipCompressor,
    ZstdCompressor,
    collect_files,
    detect_algorithm,
)


@pytest.fixture
def sample_tree(tmp_path):
    root = tmp_path / "tree"
    (root / "sub" / "deep").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "a.txt").write_text("Hello World")
    (root / "sub" / "b.bin").write_bytes(bytes(range(256)) * 64)
    (root / "sub" / "deep" / "c.txt").write_text("deep file")
    return root


def _read_tree(root: Path):
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in root.rglob("*") if p.is_file()}


class TestCollectFiles:
    """collect_files 测试"""

    def test_directories_before_contents(self, sample_tree):
        files = collect_files(sample_tree)
        paths = [f.relative_path.as_posix() for f in files]

        assert paths.index("sub") < paths.index("sub/b.bin")
        assert paths.index("sub/deep") < paths.index("sub/deep/c.txt")
        assert "empty" in paths
        assert files == collect_files(sample_tree)

    def test_prefix(self, sample_tree):
        files = collect_files(sample_tree, prefix=Path("app-bin"))
        assert files[0].relative_path == Path("app-bin")
        assert files[0].is_directory
        assert all(f.relative_path.parts[0] == "app-bin" for f in files)

    def test_single_file(self, sample_tree):
        files = collect_files(sample_tree / "a.txt")
        assert len(files) == 1
        assert files[0].relative_path == Path("a.txt")
        assert files[0].size == 11

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            collect_files(tmp_path / "missing")


class TestZstdCompressor:
    """ZstdCompressor 测试"""

    def test_get_algorithm(self):
        assert ZstdCompressor().get_algorithm() == CompressionAlgorithm.ZSTD

    def test_round_trip(self, tmp_path, sample_tree):
        compressor = ZstdCompressor(level=3)
        output = io.BytesIO()
        size = compressor.compress_files(collect_files(sample_tree), output)
        assert size == len(output.getvalue())
        assert output.getvalue().startswith(b'\x28\xb5\x2f\xfd')

        output.seek(0)
        dest = tmp_path / "out"
        extracted = compressor.decompress_to_directory(output, dest)

        assert len(extracted) == 3
        assert _read_tree(dest) == _read_tree(sample_tree)
        assert (dest / "empty").is_dir()

    def test_progress_callback(self, sample_tree):
        calls = []
        ZstdCompressor().compress_files(collect_files(sample_tree), io.BytesIO(),
                                        lambda current, total, name=None: calls.append((current, total, name)))
        assert calls
        assert all(total == 11 + 256 * 64 + 9 for _, total, _ in calls)

    def test_unreadable_file(self, tmp_path):
        missing = FileInfo(tmp_path / "gone.txt", Path("gone.txt"), 10, 0.0)
        with pytest.raises(CompressionError):
            ZstdCompressor().compress_files([missing], io.BytesIO())

    def test_truncated_stream(self, tmp_path):
        big = tmp_path / "big.bin"
        big.write_bytes(os.urandom(512 * 1024))
        output = io.BytesIO()
        ZstdCompressor().compress_files(collect_files(big), output)
        data = output.getvalue()

        with pytest.raises(DecompressionError):
            ZstdCompressor().decompress_to_directory(io.BytesIO(data[:len(data) // 2]), tmp_path / "out")

    def test_path_traversal_rejected(self, tmp_path):
        evil = tmp_path / "src" / "evil.txt"
        evil.parent.mkdir()
        evil.write_text("x")
        output = io.BytesIO()
        ZstdCompressor().compress_files([FileInfo(evil, Path("../evil.txt"), 1, 0.0)], output)
        output.seek(0)

        with pytest.raises(DecompressionError):
            ZstdCompressor().decompress_to_directory(output, tmp_path / "out")
        assert not (tmp_path / "evil.txt").exists()

    def test_bad_header_length(self, tmp_path):
        payload = zstd.ZstdCompressor().compress(b'\xff\xff\xff\xff' + b'x' * 32)
        with pytest.raises(DecompressionError):
            ZstdCompressor().decompress_to_directory(io.BytesIO(payload), tmp_path / "out")


class TestZipCompressor:
    """ZipCompressor 测试"""

    def test_round_trip(self, tmp_path, sample_tree):
        output = io.BytesIO()
        ZipCompressor(level=6).compress_files(collect_files(sample_tree), output)
        output.seek(0)

        dest = tmp_path / "out"
        extracted = ZipCompressor().decompress_to_directory(output, dest)
        assert len(extracted) == 3
        assert _read_tree(dest) == _read_tree(sample_tree)

    def test_store_only(self, sample_tree):
        output = io.BytesIO()
        ZipCompressor(store_only=True).compress_files(collect_files(sample_tree), output)
        output.seek(0)
        with zipfile.ZipFile(output) as zf:
            assert all(info.compress_type == zipfile.ZIP_STORED for info in zf.infolist())

    def test_level_clamped(self):
        assert ZipCompressor(level=22).level == 9
        assert ZipCompressor(level=0).level == 1

    def test_bad_zip(self, tmp_path):
        with pytest.raises(DecompressionError):
            ZipCompressor().decompress_to_directory(io.BytesIO(b"PK\x03\x04broken"), tmp_path / "out")

    def test_corrupt_deflate_data(self, tmp_path):
        output = io.BytesIO()
        with zipfile.ZipFile(output, 'w', zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("data.bin", b"".join(b"line %05d\n" % i for i in range(5000)))
        data = bytearray(output.getvalue())
        # 本地文件头 30 字节加文件名 8 字节之后是压缩数据
        data[48:108] = b"\xff" * 60

        with pytest.raises(DecompressionError):
            ZipCompressor().decompress_to_directory(io.BytesIO(bytes(data)), tmp_path / "out")

    def test_path_traversal_rejected(self, tmp_path):
        output = io.BytesIO()
        with zipfile.ZipFile(output, 'w') as zf:
            zf.writestr("../outside.txt", b"x")
        output.seek(0)

        with pytest.raises(DecompressionError):
            ZipCompressor().decompress_to_directory(output, tmp_path / "out")
        assert not (tmp_path / "outside.txt").exists()


class TestDetectAndFactory:
    """格式识别与工厂测试"""

    def test_detect(self, tmp_path, sample_tree):
        zst = tmp_path / "a.zst"
        with open(zst, 'wb') as f:
            ZstdCompressor().compress_files(collect_files(sample_tree), f)
        zip_path = tmp_path / "a.zip"
        with open(zip_path, 'wb') as f:
            ZipCompressor().compress_files(collect_files(sample_tree), f)
        garbage = tmp_path / "a.bin"
        garbage.write_bytes(b"garbage")

        assert detect_algorithm(zst) == CompressionAlgorithm.ZSTD
        assert detect_algorithm(zip_path) == CompressionAlgorithm.ZIP
        with pytest.raises(DecompressionError):
            detect_algorithm(garbage)
        with pytest.raises(DecompressionError):
            detect_algorithm(tmp_path / "missing")

        assert isinstance(CompressorFactory.for_payload(zst), ZstdCompressor)
        assert isinstance(CompressorFactory.for_payload(zip_path), ZipCompressor)

    def test_create_compressor(self):
        assert CompressorFactory.create_compressor(CompressionAlgorithm.ZSTD, 5).level == 5
        assert isinstance(CompressorFactory.create_compressor(CompressionAlgorithm.ZIP), ZipCompressor)
        with pytest.raises(CompressionError):
            CompressorFactory.create_compressor("lzma")

    def test_available_algorithms(self):
        assert CompressorFactory.get_available_algorithms() == [
            CompressionAlgorithm.ZSTD, CompressionAlgorithm.ZIP,
        ]
