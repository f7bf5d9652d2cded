import pytest

from huffman_compression import main


def test_compress_then_decompress_file(tmp_path):
    source = tmp_path / "notes.txt"
    source.write_bytes(b'the quick brown fox jumps over the lazy dog\n' * 20)

    main([str(source)])
    compressed = tmp_path / "notes.txt.hf"
    assert compressed.exists()
    assert compressed.stat().st_size < source.stat().st_size

    restored = tmp_path / "restored.txt"
    main([str(compressed), "--decompress", "-o", str(restored)])
    assert restored.read_bytes() == source.read_bytes()


def test_decompress_strips_extension(tmp_path):
    source = tmp_path / "empty.bin"
    source.write_bytes(b'')
    main([str(source), "-o", str(tmp_path / "packed.hf")])
    main([str(tmp_path / "packed.hf"), "--decompress"])
    assert (tmp_path / "packed").read_bytes() == b''


def test_decompress_rejects_wrong_extension(tmp_path, capsys):
    source = tmp_path / "data.zip"
    source.write_bytes(b'PK')
    with pytest.raises(SystemExit) as excinfo:
        main([str(source), "--decompress"])
    assert excinfo.value.code == -1
    assert "only .hf files" in capsys.readouterr().err


def test_decompress_reports_bad_magic(tmp_path, capsys):
    source = tmp_path / "bogus.hf"
    source.write_bytes(b'not a huffman file')
    with pytest.raises(SystemExit) as excinfo:
        main([str(source), "--decompress"])
    assert excinfo.value.code == -1
    assert "illegal header" in capsys.readouterr().err


def test_failed_decompress_keeps_existing_output(tmp_path):
    target = tmp_path / "report"
    target.write_bytes(b'precious data')
    source = tmp_path / "report.hf"
    source.write_bytes(b'not a huffman file')
    with pytest.raises(SystemExit) as excinfo:
        main([str(source), "--decompress"])
    assert excinfo.value.code == -1
    assert target.read_bytes() == b'precious data'


def test_decompress_rejects_bare_extension(tmp_path, capsys):
    source = tmp_path / ".hf"
    source.write_bytes(b'')
    with pytest.raises(SystemExit) as excinfo:
        main([str(source), "--decompress"])
    assert excinfo.value.code == -1
    assert "only .hf files" in capsys.readouterr().err
