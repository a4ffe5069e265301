"""
Tests for payload extraction, run against fake installer tools.
"""

import pathlib
import shutil

import pytest

from fakes import FakeInstallerTools, fake_msi, fake_vsix, make_manifest, make_package, make_payload
from winsdk.manifest_models import PackageType, Payload
from winsdk.payload_downloader import ByteCounterProgress, PayloadCache
from winsdk.payload_extractor import ExtractionKind, PayloadExtractor, SubprocessInstallerTools, classify
from winsdk.winsdk_config import CacheLayout
from winsdk.winsdk_exceptions import ExtractionError, UnsafePayloadPathError

HEADERS_MSI = fake_msi(
    {
        "Program Files/Windows Kits/10/Include/10.0.19041.0/um/Windows.h": "#include <winapifamily.h>\n",
        "Program Files/Windows Kits/10/Lib/10.0.19041.0/um/x64/kernel32.Lib": "lib",
        "Program Files/Microsoft/junk.txt": "junk",
    }
)
VC_VSIX = fake_vsix(
    {
        "Contents/VC/Tools/MSVC/14.38.33130/include/vector": "// vector\n",
        "extension.vsixmanifest": "<PackageManifest/>",
        "[Content_Types].xml": "<Types/>",
    }
)
CAB = b"MSCF cabinet"
README = b"readme"


def payload(file_name: str, content: bytes = b"x") -> Payload:
    return Payload.model_validate(make_payload(file_name, content))


class TestClassify:
    @pytest.mark.parametrize(
        "file_name, package_type, kind",
        [
            ("Installers\\Windows SDK Headers.msi", PackageType.MSI, ExtractionKind.MSI),
            ("SETUP.MSI", None, ExtractionKind.MSI),
            ("Microsoft.VC.Tools.vsix", PackageType.VSIX, ExtractionKind.VSIX),
            ("Microsoft.VC.Tools.VSIX", PackageType.EXE, ExtractionKind.VSIX),
            ("Installers\\cab1.cab", PackageType.MSI, ExtractionKind.NONE),
            ("payload", PackageType.VSIX, ExtractionKind.VSIX),
            ("payload", PackageType.MSI, ExtractionKind.MSI),
            ("payload", PackageType.EXE, ExtractionKind.NONE),
            ("payload.bin", PackageType.MSI, ExtractionKind.MSI),
            ("payload.bin", None, ExtractionKind.NONE),
            ("vc_redist.x64.exe", PackageType.MSI, ExtractionKind.NONE),
            ("winsdksetup.exe", PackageType.EXE, ExtractionKind.NONE),
        ],
    )
    def test_classify(self, file_name, package_type, kind):
        """Test picking the extraction strategy of a payload."""
        assert classify(payload(file_name), package_type) == kind


class TestPayloadExtractor:
    @pytest.fixture
    def packages(self):
        manifest = make_manifest(
            [
                make_package(
                    "Win10SDK_Headers",
                    package_type="Msi",
                    payloads=[
                        make_payload("Installers\\Windows SDK Headers.msi", HEADERS_MSI),
                        make_payload("Installers\\cab1.cab", CAB),
                    ],
                ),
                make_package(
                    "Microsoft.VC.Tools", package_type="Vsix", payloads=[make_payload("Microsoft.VC.Tools.vsix", VC_VSIX)]
                ),
                make_package("Docs", payloads=[make_payload("readme.txt", README)]),
            ]
        )
        return manifest.packages

    def make_cache(self, root: pathlib.Path, session, logger, packages, layout=CacheLayout.PACKAGE) -> PayloadCache:
        contents = {
            "Windows SDK Headers.msi": HEADERS_MSI,
            "cab1.cab": CAB,
            "Microsoft.VC.Tools.vsix": VC_VSIX,
            "readme.txt": README,
        }
        for package in packages:
            for item in package.payloads:
                session.add(item.url, contents[item.relative_path.name])
        cache = PayloadCache(str(root), logger, session=session, layout=layout)
        cache.fetch_all(packages)
        return cache

    def test_extract_product_roots(self, tmp_path, logger, session, tools, packages):
        """Test extracting MSI and VSIX payloads into the product roots."""
        cache = self.make_cache(tmp_path / "cache", session, logger, packages)
        output = tmp_path / "sdk"
        (output / "stale").mkdir(parents=True)
        (output / "stale" / "old.h").write_text("old")

        progress = ByteCounterProgress()
        PayloadExtractor(logger, tools=tools, progress=progress).extract(packages, cache, str(output))

        assert (output / "Windows Kits/10/Include/10.0.19041.0/um/Windows.h").is_file()
        assert (output / "Windows Kits/10/Lib/10.0.19041.0/um/x64/kernel32.Lib").is_file()
        assert (output / "VC/Tools/MSVC/14.38.33130/include/vector").read_text() == "// vector\n"
        assert sorted(p.name for p in output.iterdir()) == ["VC", "Windows Kits"]
        assert sorted(kind for kind, _ in tools.calls) == ["msi", "vsix"]
        assert progress.total == len(HEADERS_MSI) + len(VC_VSIX)
        assert progress.completed == progress.total

    def test_promote_all_keeps_everything_but_vsix_metadata(self, tmp_path, logger, session, tools, packages):
        """Test that promote_all merges everything except VSIX metadata."""
        cache = self.make_cache(tmp_path / "cache", session, logger, packages)
        output = tmp_path / "sdk"
        PayloadExtractor(logger, tools=tools, promote_all=True).extract(packages, cache, str(output))

        assert (output / "Program Files/Microsoft/junk.txt").is_file()
        assert (output / "Program Files/Windows Kits/10/Include/10.0.19041.0/um/Windows.h").is_file()
        assert (output / "VC/Tools/MSVC/14.38.33130/include/vector").is_file()
        assert not (output / "extension.vsixmanifest").exists()
        assert not (output / "[Content_Types].xml").exists()

    def test_nothing_to_extract(self, tmp_path, logger, session, tools, packages):
        """Test extracting packages without installers or archives."""
        docs = [p for p in packages if p.id == "Docs"]
        cache = self.make_cache(tmp_path / "cache", session, logger, docs)
        output = tmp_path / "sdk"
        PayloadExtractor(logger, tools=tools).extract(docs, cache, str(output))
        assert output.is_dir()
        assert list(output.iterdir()) == []
        assert tools.calls == []

    def test_digest_layout_stages_cabinets_next_to_installer(self, tmp_path, logger, session, packages):
        """Test that cabinets are staged next to their MSI with the digest layout."""
        seen_siblings = []

        class CabinetCheckingTools(FakeInstallerTools):
            def decompress_installer(self, msi_path, destination):
                seen_siblings.append(sorted(p.name for p in pathlib.Path(msi_path).parent.iterdir()))
                super().decompress_installer(msi_path, destination)

        cache = self.make_cache(tmp_path / "cache", session, logger, packages, layout=CacheLayout.DIGEST)
        output = tmp_path / "sdk"
        PayloadExtractor(logger, tools=CabinetCheckingTools()).extract(packages, cache, str(output))

        assert seen_siblings == [["Windows SDK Headers.msi", "cab1.cab"]]
        assert (output / "Windows Kits/10/Include/10.0.19041.0/um/Windows.h").is_file()

    def test_tool_failure_aborts(self, tmp_path, logger, session, packages):
        """Test that a failing tool aborts extraction."""
        cache = self.make_cache(tmp_path / "cache", session, logger, packages)
        tools = FakeInstallerTools(fail_on="Microsoft.VC.Tools.vsix")
        with pytest.raises(ExtractionError):
            PayloadExtractor(logger, tools=tools).extract(packages, cache, str(tmp_path / "sdk"))

    def test_refuses_to_wipe_the_cache(self, tmp_path, logger, session, tools, packages):
        """Test that an output directory holding the cache is refused."""
        cache = self.make_cache(tmp_path / "work" / "cache", session, logger, packages)
        with pytest.raises(ExtractionError):
            PayloadExtractor(logger, tools=tools).extract(packages, cache, str(tmp_path / "work"))
        assert cache.path_for("Docs", packages[2].payloads[0]).is_file()

    def test_unverified_extraction_requires_cached_payloads(self, tmp_path, logger, session, tools, packages):
        """Test that unverified extraction still needs every payload cached."""
        cache = self.make_cache(tmp_path / "cache", session, logger, packages)
        shutil.rmtree(tmp_path / "cache" / "Microsoft.VC.Tools")
        session.routes.clear()
        with pytest.raises(ExtractionError):
            PayloadExtractor(logger, tools=tools, verify=False).extract(packages, cache, str(tmp_path / "sdk"))

    def test_extraction_never_downloads(self, tmp_path, logger, session, tools, packages):
        """Test that extraction from an empty cache fails without network requests."""
        for package in packages:
            for item in package.payloads:
                session.add(item.url, b"served but never requested")
        cache = PayloadCache(str(tmp_path / "cache"), logger, session=session)

        with pytest.raises(ExtractionError, match="is not cached"):
            PayloadExtractor(logger, tools=tools).extract(packages, cache, str(tmp_path / "sdk"))
        assert session.requests == []
        assert tools.calls == []

    def test_unsafe_package_id_in_staging(self, tmp_path, logger, session, tools):
        """Test that a package id escaping the staging directory is rejected."""
        vsix = make_payload("Microsoft.VC.Tools.vsix", VC_VSIX)
        session.add(vsix["url"], VC_VSIX)
        packages = make_manifest([make_package("..", package_type="Vsix", payloads=[vsix])]).packages
        cache = PayloadCache(str(tmp_path / "cache"), logger, session=session, layout=CacheLayout.DIGEST)
        cache.fetch_all(packages)

        with pytest.raises(UnsafePayloadPathError):
            PayloadExtractor(logger, tools=tools).extract(packages, cache, str(tmp_path / "sdk"))
        assert tools.calls == []


class TestSubprocessInstallerTools:
    def test_missing_tool(self, tmp_path):
        """Test that a tool missing from PATH is an extraction error."""
        tools = SubprocessInstallerTools(msiextract="winsdk-test-no-such-msiextract")
        with pytest.raises(ExtractionError, match="not found on PATH"):
            tools.decompress_installer(str(tmp_path / "a.msi"), str(tmp_path / "out"))

    @pytest.mark.skipif(shutil.which("false") is None, reason="needs the false utility")
    def test_failing_tool(self, tmp_path):
        """Test that a non-zero tool exit is an extraction error."""
        tools = SubprocessInstallerTools(unzip="false")
        with pytest.raises(ExtractionError, match="exit code 1"):
            tools.expand_archive(str(tmp_path / "a.vsix"), str(tmp_path / "out"))
