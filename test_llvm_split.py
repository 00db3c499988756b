#!/usr/bin/env python3
"""
Unit tests for the LLVM pass-dump splitter.

Run tests:
    pytest test_llvm_split.py -v
"""

import pytest
from pathlib import Path

from llvm_split import (
    STAGE_MARKER,
    split_pass_dump,
    stage_file_path,
    main,
)
from llvm_cfg import LLVMIRParser


PASS_DUMP = """\
; *** IR Dump Before SROAPass on f ***
define void @f() {
entry:
  br label %exit

exit:                                             ; preds = %entry
  ret void
}
; *** IR Dump After SROAPass on f ***
define void @f() {
entry:
  ret void
}
; *** IR Dump After SimplifyCFGPass on f ***
define void @f() {
entry:
  ret void
}
"""


@pytest.fixture
def dump_file(tmp_path):
    path = tmp_path / "passes.ll"
    path.write_text(PASS_DUMP, encoding='utf-8')
    return path


class TestSplitPassDump:
    """Tests for splitting a pass-dump log."""

    def test_stage_file_path(self, tmp_path):
        assert stage_file_path(tmp_path, "a", 3) == tmp_path / "a_3.ll"

    def test_file_count(self, dump_file, tmp_path):
        """Test one file before the first banner plus one per banner."""
        out_dir = tmp_path / "out"
        written = split_pass_dump(str(dump_file), str(out_dir))
        assert [p.name for p in written] == ["passes_0.ll", "passes_1.ll", "passes_2.ll"]
        assert all(p.parent == out_dir for p in written)

    def test_banner_starts_file(self, dump_file, tmp_path):
        written = split_pass_dump(str(dump_file), str(tmp_path / "out"))
        first_lines = [p.read_text(encoding='utf-8').splitlines()[0] for p in written]
        assert first_lines[0] == "; *** IR Dump Before SROAPass on f ***"
        assert STAGE_MARKER in first_lines[1]
        assert "SimplifyCFGPass" in first_lines[2]

    def test_content_preserved(self, dump_file, tmp_path):
        """Test that concatenating the stage files gives back the input."""
        written = split_pass_dump(str(dump_file), str(tmp_path / "out"))
        joined = "".join(p.read_text(encoding='utf-8') for p in written)
        assert joined == PASS_DUMP

    def test_stage_files_parse(self, dump_file, tmp_path):
        """Test that every stage file holds exactly one parsable function."""
        written = split_pass_dump(str(dump_file), str(tmp_path / "out"))
        block_counts = [
            len(LLVMIRParser().parse_file(str(p))[0].blocks) for p in written
        ]
        assert block_counts == [2, 1, 1]

    def test_no_marker(self, tmp_path):
        path = tmp_path / "plain.ll"
        path.write_text("define void @g() {\n  ret void\n}\n", encoding='utf-8')
        written = split_pass_dump(str(path), str(tmp_path / "out"))
        assert len(written) == 1

    def test_unreadable_input_writes_nothing(self, tmp_path):
        """Test that a failed open of the input leaves no stage file behind."""
        path = tmp_path / "d.ll"
        path.mkdir()
        out_dir = tmp_path / "out"
        with pytest.raises(OSError):
            split_pass_dump(str(path), str(out_dir))
        assert list(out_dir.iterdir()) == []

    def test_wrong_suffix(self, tmp_path):
        path = tmp_path / "passes.txt"
        path.write_text(PASS_DUMP, encoding='utf-8')
        with pytest.raises(ValueError):
            split_pass_dump(str(path), str(tmp_path / "out"))


class TestMain:
    """Tests for the command line entry point."""

    def test_main(self, dump_file, tmp_path, capsys):
        out_dir = tmp_path / "stages"
        main([str(dump_file), "-o", str(out_dir)])
        assert "Wrote 3 stage files" in capsys.readouterr().out
        assert sorted(p.name for p in out_dir.iterdir()) == [
            "passes_0.ll", "passes_1.ll", "passes_2.ll",
        ]

    def test_missing_input(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "missing.ll")])
        assert exc_info.value.code == 1

    def test_wrong_suffix(self, tmp_path, capsys):
        path = tmp_path / "passes.log"
        path.write_text(PASS_DUMP, encoding='utf-8')
        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "-o", str(tmp_path / "out")])
        assert exc_info.value.code == 1
        assert "must end with .ll" in capsys.readouterr().err


if __name__ == "__main__":
    import sys
    sys.exit(pytest.main([__file__, "-v"]))
