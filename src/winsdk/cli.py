"""
Command line interface of winsdk.

Subcommands mirror the pipeline stages so that they can run separately, with
the resolved package list as the hand-off between resolution and fetch/extract:

    winsdk download-manifest --major-version 17 --output manifest.json
    winsdk choose-packages --manifest manifest.json --package Microsoft.VisualStudio.Component.VC.Tools.x86.x64 --output packages.json
    winsdk download-packages --packages packages.json --cache cache
    winsdk extract-packages --packages packages.json --cache cache --output sdk

or all at once from a winsdk.toml file:

    winsdk run --config winsdk.toml
"""

import argparse
import logging
import sys
from typing import Callable, List, Optional

from winsdk.case_normalizer import CaseNormalizer, make_alias_strategy
from winsdk.manifest_models import DependencyChip, Manifest, read_package_list, write_package_list
from winsdk.package_resolver import PackageResolver
from winsdk.payload_downloader import (
    ManifestSource,
    PayloadCache,
    ProgressReporter,
    TqdmProgress,
    make_http_session,
)
from winsdk.payload_extractor import PayloadExtractor
from winsdk.pipeline import SdkPipeline
from winsdk.winsdk_config import DEFAULT_PRODUCT_ROOTS, AliasKind, CacheLayout, CaseMode, WinSdkConfig
from winsdk.winsdk_exceptions import WinSdkException
from winsdk.winsdk_logger import WinSdkLogger


def _progress_factory(args: argparse.Namespace) -> Callable[[], ProgressReporter]:
    if args.no_progress:
        return ProgressReporter
    return TqdmProgress


def _cmd_manifest_url(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    source = ManifestSource(make_http_session(args.retries), logger)
    payload = source.fetch_manifest_payload(args.major_version)
    print(f"URL {payload.url}")
    print(f"SHA256 {payload.sha256}")


def _cmd_download_manifest(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    source = ManifestSource(make_http_session(args.retries), logger)
    target = args.url if args.url else source.fetch_manifest_payload(args.major_version)
    source.download_manifest(target, args.output)


def _cmd_choose_packages(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    manifest = Manifest.from_file(args.manifest)
    chips = [DependencyChip(chip) for chip in args.chip] if args.chip else None
    packages = PackageResolver(manifest, logger).resolve(args.package, chips=chips)
    write_package_list(args.output, packages)


def _make_cache(args: argparse.Namespace, logger: WinSdkLogger) -> PayloadCache:
    return PayloadCache(
        args.cache,
        logger,
        session=make_http_session(args.retries),
        layout=CacheLayout(args.layout),
        max_workers=args.jobs,
        progress=_progress_factory(args)(),
    )


def _cmd_download_packages(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    packages = read_package_list(args.packages)
    _make_cache(args, logger).fetch_all(packages)


def _cmd_extract_packages(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    packages = read_package_list(args.packages)
    extractor = PayloadExtractor(
        logger,
        promote_all=args.promote_all,
        product_roots=args.product_root or DEFAULT_PRODUCT_ROOTS,
        max_workers=args.jobs,
        progress=_progress_factory(args)(),
    )
    extractor.extract(packages, _make_cache(args, logger), args.output)
    if not args.no_normalize:
        _normalize(args, logger)


def _cmd_normalize(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    _normalize(args, logger)


def _normalize(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    normalizer = CaseNormalizer(
        logger,
        mode=CaseMode(args.case_mode),
        alias=make_alias_strategy(AliasKind(args.alias)),
    )
    normalizer.normalize(args.output)


def _cmd_run(args: argparse.Namespace, logger: WinSdkLogger) -> None:
    config = WinSdkConfig.from_toml(args.config)
    SdkPipeline(config, logger, progress_factory=_progress_factory(args)).run()


def _add_cache_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--cache", required=True, help="Payload cache directory")
    parser.add_argument(
        "--layout",
        choices=[layout.value for layout in CacheLayout],
        default=CacheLayout.PACKAGE.value,
        help="Cache directory layout",
    )
    parser.add_argument("--jobs", type=int, default=8, help="Concurrent downloads/extractions")


def _add_case_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--case-mode",
        choices=[mode.value for mode in CaseMode],
        default=CaseMode.RENAME.value,
        help="Rename headers to lowercase or keep them and add lowercase aliases",
    )
    parser.add_argument(
        "--alias",
        choices=[kind.value for kind in AliasKind],
        default=AliasKind.SYMLINK.value,
        help="How aliases for differently-cased names are created",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="winsdk",
        description="Assemble a Windows SDK and MSVC tree from the Visual Studio package feed",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    parser.add_argument("--no-progress", action="store_true", help="Do not render progress bars")
    parser.add_argument("--retries", type=int, default=0, help="HTTP retries per request")
    subparsers = parser.add_subparsers(dest="command", required=True)

    manifest_url = subparsers.add_parser("manifest-url", help="Print the manifest URL and digest")
    manifest_url.add_argument("--major-version", required=True)
    manifest_url.set_defaults(handler=_cmd_manifest_url)

    download_manifest = subparsers.add_parser("download-manifest", help="Download the manifest")
    source = download_manifest.add_mutually_exclusive_group(required=True)
    source.add_argument("--major-version")
    source.add_argument("--url")
    download_manifest.add_argument("--output", required=True)
    download_manifest.set_defaults(handler=_cmd_download_manifest)

    choose_packages = subparsers.add_parser("choose-packages", help="Resolve packages to a package list")
    choose_packages.add_argument("--manifest", required=True)
    choose_packages.add_argument(
        "--package", action="append", required=True, metavar="PACKAGE", help="Root package id, repeatable"
    )
    choose_packages.add_argument(
        "--chip",
        action="append",
        type=str.lower,
        choices=[chip.value for chip in DependencyChip],
        help="Only follow chip-qualified dependencies for this chip, repeatable",
    )
    choose_packages.add_argument("--output", required=True)
    choose_packages.set_defaults(handler=_cmd_choose_packages)

    download_packages = subparsers.add_parser("download-packages", help="Download a package list")
    download_packages.add_argument("--packages", required=True)
    _add_cache_arguments(download_packages)
    download_packages.set_defaults(handler=_cmd_download_packages)

    extract_packages = subparsers.add_parser("extract-packages", help="Extract a package list")
    extract_packages.add_argument("--packages", required=True)
    extract_packages.add_argument("--output", required=True)
    extract_packages.add_argument("--promote-all", action="store_true", help="Keep every extracted file")
    extract_packages.add_argument(
        "--product-root", action="append", help="Subtree copied into the output, repeatable"
    )
    extract_packages.add_argument("--no-normalize", action="store_true", help="Skip case normalization")
    _add_cache_arguments(extract_packages)
    _add_case_arguments(extract_packages)
    extract_packages.set_defaults(handler=_cmd_extract_packages)

    normalize = subparsers.add_parser("normalize", help="Repair header casing of an extracted tree")
    normalize.add_argument("--output", required=True)
    _add_case_arguments(normalize)
    normalize.set_defaults(handler=_cmd_normalize)

    run = subparsers.add_parser("run", help="Run the whole pipeline from a winsdk.toml file")
    run.add_argument("--config", required=True)
    run.set_defaults(handler=_cmd_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)
    logger = WinSdkLogger(level=level)

    try:
        args.handler(args, logger)
    except (WinSdkException, OSError) as e:
        print(f"winsdk: error: {e}", file=sys.stderr)
        return 1
    return 0
