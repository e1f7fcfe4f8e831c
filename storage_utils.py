"""
Unified storage CLI for Cloud Stash.

Works against whichever backend settings.ini (or STORAGE_* env vars) selects.

Usage:
    python storage_utils.py --test
    python storage_utils.py --list photos/
    python storage_utils.py --upload ./report.pdf docs/report.pdf
    python storage_utils.py --download docs/report.pdf ./report.pdf
    python storage_utils.py --delete docs/a.txt docs/b.txt
    python storage_utils.py --search readme
    python storage_utils.py --url docs/report.pdf
    python storage_utils.py --stats --provider r2
    python storage_utils.py --validate --config settings.ini
"""

import argparse
import json
import logging
import sys
import threading

from tqdm import tqdm

from cloudstash.config_validator import ConfigValidationError, validate_configuration
from cloudstash.constants import DEFAULT_LOG_LEVEL
from cloudstash.proxy_config import test_proxy_connection
from cloudstash.storage.errors import StorageError
from cloudstash.storage.factory import get_storage_provider, load_storage_config
from cloudstash.storage.progress import fmt_size

logger = logging.getLogger("storage_utils")


class _ProgressBar:
    """Adapts the provider progress callback to a tqdm bar."""

    def __init__(self, desc: str):
        self._desc = desc
        self._bar = None

    def __call__(self, percent: int, transferred: int, total: int, speed: float) -> None:
        if self._bar is None:
            self._bar = tqdm(total=total or None, desc=self._desc, unit="B",
                             unit_scale=True, unit_divisor=1024)
        if total and self._bar.total != total:
            self._bar.total = total
        self._bar.update(transferred - self._bar.n)
        self._bar.set_postfix_str(f"{fmt_size(speed)}/s")

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_test(provider, args):
    if provider.config.proxy is not None:
        check = test_proxy_connection(provider.config.proxy)
        print(check.get("message") or check.get("error"))
    result = provider.test_connection()
    if result.success:
        print(result.message)
        return 0
    print(f"Connection failed: {result.error}")
    return 1


def cmd_list(provider, args):
    token = None
    while True:
        page = provider.list_files(args.list, "/", token).data
        for folder in page.folders:
            print(f"{'DIR':>10}  {folder.key}")
        for entry in page.files:
            print(f"{fmt_size(entry.size):>10}  {entry.key}")
        if not page.is_truncated:
            return 0
        token = page.next_continuation_token


def cmd_upload(provider, args):
    local_path, key = args.upload
    bar = _ProgressBar(f"Uploading {key}")
    cancel = threading.Event()
    try:
        result = provider.upload_file(local_path, key, bar, cancel)
    except KeyboardInterrupt:
        cancel.set()
        raise
    finally:
        bar.close()
    outcome = result.data
    print(f"Uploaded to {outcome.key}")
    if outcome.url:
        print(outcome.url)
    return 0


def cmd_download(provider, args):
    key, local_path = args.download
    bar = _ProgressBar(f"Downloading {key}")
    cancel = threading.Event()
    try:
        provider.download_file(key, local_path, bar, cancel)
    except KeyboardInterrupt:
        cancel.set()
        raise
    finally:
        bar.close()
    print(f"Saved {key} to {local_path}")
    return 0


def cmd_delete(provider, args):
    keys = args.delete
    if len(keys) == 1:
        provider.delete_file(keys[0])
        print(f"Deleted {keys[0]}")
        return 0

    result = provider.delete_files(keys)
    print(result.summary())
    for key, reason in result.failed.items():
        print(f"  - {key}: {reason}")
    return 0 if not result.failed else 1


def cmd_search(provider, args):
    result = provider.search_files(args.search).data
    for entry in result.files:
        print(f"{fmt_size(entry.size):>10}  {entry.key}")
    print(f"{result.total} match(es)")
    return 0


def cmd_url(provider, args):
    print(provider.get_public_url(args.url))
    return 0


def cmd_info(provider, args):
    _print_json(provider.get_file_info(args.info).data.to_dict())
    return 0


def cmd_preview(provider, args):
    preview = provider.get_file_content(args.preview).data
    if preview.too_large:
        print(f"{args.preview} is too large to preview ({fmt_size(preview.size)})")
    else:
        print(preview.content)
    return 0


def cmd_stats(provider, args):
    stats = provider.get_storage_stats().data
    print(f"Objects: {stats.total_count}")
    print(f"Size:    {fmt_size(stats.total_size)}")
    return 0


def cmd_buckets(provider, args):
    for bucket in provider.list_buckets().data:
        region = f" ({bucket.region})" if bucket.region else ""
        print(f"{bucket.name}{region}")
    return 0


def cmd_validate(args):
    result = validate_configuration(args.config)
    for warning in result["warnings"]:
        print(f"Warning: {warning}")
    print(f"Configuration is valid ({result['warning_count']} warning(s))")
    return 0


COMMANDS = [
    ("test", cmd_test),
    ("list", cmd_list),
    ("upload", cmd_upload),
    ("download", cmd_download),
    ("delete", cmd_delete),
    ("search", cmd_search),
    ("url", cmd_url),
    ("info", cmd_info),
    ("preview", cmd_preview),
    ("stats", cmd_stats),
    ("buckets", cmd_buckets),
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cloud Stash storage management (S3, R2, OSS, COS, OBS, Qiniu, GCS, Gitee, image hosts)",
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--test", action="store_true", help="Test the connection to the provider")
    group.add_argument("--list", nargs="?", const="", metavar="PREFIX", help="List objects under a prefix")
    group.add_argument("--upload", nargs=2, metavar=("PATH", "KEY"), help="Upload a local file")
    group.add_argument("--download", nargs=2, metavar=("KEY", "PATH"), help="Download an object")
    group.add_argument("--delete", nargs="+", metavar="KEY", help="Delete one or more objects")
    group.add_argument("--search", metavar="TERM", help="Case-insensitive search over keys")
    group.add_argument("--url", metavar="KEY", help="Print the best shareable URL for a key")
    group.add_argument("--info", metavar="KEY", help="Show object metadata")
    group.add_argument("--preview", metavar="KEY", help="Print a small text object")
    group.add_argument("--stats", action="store_true", help="Count objects and bytes")
    group.add_argument("--buckets", action="store_true", help="List buckets visible to the credentials")
    group.add_argument("--validate", action="store_true", help="Check settings.ini without connecting")

    parser.add_argument("--provider", help="Override the provider from settings.ini")
    parser.add_argument("--config", help="Path to settings.ini")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, DEFAULT_LOG_LEVEL),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.validate:
            return cmd_validate(args)
        config = load_storage_config(args.config, provider=args.provider)
        provider = get_storage_provider(config)
    except ConfigValidationError as e:
        print(e, file=sys.stderr)
        return 2

    for name, handler in COMMANDS:
        value = getattr(args, name)
        if value is None or value is False:
            continue
        try:
            return handler(provider, args)
        except StorageError as e:
            logger.debug(f"{name} failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    parser.error("no command given")


if __name__ == "__main__":
    sys.exit(main())
