"""
Tests for case normalization of an extracted tree.
"""

import os
import pathlib

import pytest

from winsdk.case_normalizer import CaseNormalizer, CopyAlias, SymlinkAlias
from winsdk.winsdk_config import CaseMode

UM = pathlib.Path("Windows Kits/10/Include/10.0.19041.0/um")
SHARED = pathlib.Path("Windows Kits/10/Include/10.0.19041.0/shared")


def write(root: pathlib.Path, relative, text: str = "") -> pathlib.Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def names(directory: pathlib.Path):
    return sorted(os.listdir(directory))


class TestCaseNormalizer:
    @pytest.fixture
    def sdk(self, tmp_path: pathlib.Path) -> pathlib.Path:
        write(tmp_path, UM / "Windows.h", "#include <WinDef.h>\n#include \"winbase.h\"\n")
        write(tmp_path, UM / "windef.h", "// windef\n")
        write(tmp_path, UM / "WinBase.h", "#  include <..\\shared\\WinAPIFamily.h>\n")
        write(tmp_path, SHARED / "winapifamily.h", "// family\n")
        write(tmp_path, pathlib.Path("Windows Kits/10/Lib/10.0.19041.0/um/x64/Kernel32.Lib"), "lib")
        write(tmp_path, UM / "README.txt", "not a header")
        return tmp_path

    def test_rename_and_repair(self, sdk, logger):
        """Test renaming headers to lowercase and aliasing the casings used by includes."""
        report = CaseNormalizer(logger).normalize(str(sdk))

        # Canonical lowercase files, original casings only where referenced
        assert names(sdk / UM) == ["README.txt", "WinDef.h", "winbase.h", "windef.h", "windows.h"]
        assert names(sdk / SHARED) == ["WinAPIFamily.h", "winapifamily.h"]
        assert names(sdk / "Windows Kits/10/Lib/10.0.19041.0/um/x64") == ["kernel32.lib"]

        assert (sdk / UM / "WinDef.h").read_text() == "// windef\n"
        assert (sdk / SHARED / "WinAPIFamily.h").read_text() == "// family\n"
        assert len(report.renamed) == 3
        assert len(report.created) == 2
        assert report.warnings == []

    def test_every_include_resolves(self, sdk, logger):
        """Test that every include target resolves after normalization."""
        CaseNormalizer(logger).normalize(str(sdk))
        for referenced in ("WinDef.h", "winbase.h"):
            assert (sdk / UM / referenced).is_file()
        assert (sdk / SHARED / "WinAPIFamily.h").is_file()

    def test_second_run_changes_nothing(self, sdk, logger):
        """Test that normalizing an already normalized tree is a no-op."""
        normalizer = CaseNormalizer(logger)
        normalizer.normalize(str(sdk))
        before = sorted(str(p.relative_to(sdk)) for p in sdk.rglob("*"))

        report = normalizer.normalize(str(sdk))
        assert not report.changed
        assert sorted(str(p.relative_to(sdk)) for p in sdk.rglob("*")) == before

    def test_alias_mode_keeps_original_names(self, sdk, logger):
        """Test that alias mode keeps the original names next to lowercase aliases."""
        report = CaseNormalizer(logger, mode=CaseMode.ALIAS).normalize(str(sdk))

        assert names(sdk / UM) == ["README.txt", "WinBase.h", "WinDef.h", "Windows.h", "winbase.h", "windef.h", "windows.h"]
        assert report.renamed == []
        assert len(report.aliased) == 3
        assert (sdk / UM / "windows.h").read_text() == (sdk / UM / "Windows.h").read_text()

    def test_copy_alias(self, sdk, logger):
        """Test that copy aliases are regular files with the target's content."""
        CaseNormalizer(logger, alias=CopyAlias()).normalize(str(sdk))
        alias = sdk / UM / "WinDef.h"
        assert not alias.is_symlink()
        assert alias.read_text() == "// windef\n"

    def test_symlink_alias_is_relative(self, sdk, logger):
        """Test that symlink aliases point at their target relatively."""
        CaseNormalizer(logger, alias=SymlinkAlias()).normalize(str(sdk))
        alias = sdk / UM / "WinDef.h"
        if alias.is_symlink():
            assert os.readlink(alias) == "windef.h"

    def test_ambiguous_casing_is_reported(self, tmp_path, logger):
        """Test that two real files differing only in case produce a warning."""
        write(tmp_path, "inc/a.h", '#include "Foo.h"\n')
        write(tmp_path, "inc/FOO.H", "upper")
        write(tmp_path, "inc/foo.h", "lower")

        report = CaseNormalizer(logger, mode=CaseMode.ALIAS).normalize(str(tmp_path))
        assert (tmp_path / "inc" / "Foo.h").is_file()
        assert any("Ambiguous" in warning for warning in report.warnings)

    def test_undecodable_include_is_a_warning(self, tmp_path, logger):
        """Test that an include target that is not UTF-8 is a warning, not an abort."""
        path = tmp_path / "inc" / "bad.h"
        path.parent.mkdir()
        path.write_bytes(b'#include <caf\xe9.h>\n#include "Good.h"\n')
        write(tmp_path, "inc/good.h", "")

        report = CaseNormalizer(logger).normalize(str(tmp_path))
        assert len(report.warnings) == 1
        assert (tmp_path / "inc" / "Good.h").exists()

    def test_missing_include_target_is_ignored(self, tmp_path, logger):
        """Test that includes of headers outside the tree are ignored."""
        write(tmp_path, "inc/a.h", "#include <stdio.h>\n")
        report = CaseNormalizer(logger).normalize(str(tmp_path))
        assert not report.changed
        assert names(tmp_path / "inc") == ["a.h"]

    def test_undecodable_file_name_is_a_warning(self, tmp_path, logger):
        """Test that a header name that is not UTF-8 is skipped with one warning."""
        include = tmp_path / "inc"
        write(tmp_path, "inc/a.h", '#include "B.h"\n')
        write(tmp_path, "inc/b.h", "// b\n")
        try:
            with open(os.path.join(os.fsencode(str(include)), b"Caf\xe9.h"), "wb") as f:
                f.write(b"// latin-1 name\n")
        except OSError:
            pytest.skip("filesystem rejects non UTF-8 file names")

        report = CaseNormalizer(logger).normalize(str(tmp_path))
        assert len(report.warnings) == 1
        assert "undecodable file name" in report.warnings[0]
        assert (include / "B.h").is_file()
        assert b"Caf\xe9.h" in os.listdir(os.fsencode(str(include)))
