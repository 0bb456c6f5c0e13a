import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import config
from .diff import preview
from .errors import FilesystemError, ModsyncError
from .models import Category, ConfigFile, Manifest
from .progress import LoggingObserver
from .remote import GithubUpdateStore
from .service import apply_update, preview_update, publish_update, verify_installed
from .state import InstallRecord

logger = logging.getLogger("modsync")


def _read_manifest(path: Path) -> Manifest:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FilesystemError(path, f"Failed to read manifest ({exc.strerror or exc})") from exc
    return Manifest.from_json(text)


def _read_config_files(manifest: Manifest, config_dir: Path) -> list[ConfigFile]:
    files = []
    for ref in manifest.config_files:
        path = config_dir.joinpath(*ref.relative_path.split("/"))
        try:
            files.append(ConfigFile(relative_path=ref.relative_path, content=path.read_bytes()))
        except OSError as exc:
            raise FilesystemError(path, f"Failed to read config file ({exc.strerror or exc})") from exc
    return files


def _store(args: argparse.Namespace) -> GithubUpdateStore:
    repo = args.repo or config.UPDATE_REPO
    if not repo:
        raise ModsyncError("No update repository configured; pass --repo or set MODSYNC_REPO")
    return GithubUpdateStore(repo, token=args.token or config.GITHUB_TOKEN, branch=args.branch)


# ───────────────────────────────
# Commands
# ───────────────────────────────
def cmd_diff(args: argparse.Namespace) -> int:
    old = _read_manifest(args.old) if args.old else None
    result = preview(old, _read_manifest(args.new))
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.render())
    return 0


def cmd_install(args: argparse.Namespace) -> int:
    store = _store(args)
    if args.dry_run:
        print(preview_update(args.root, store.fetch_manifest(args.update_id)).render())
        return 0
    report = apply_update(args.root, args.update_id, store, observer=LoggingObserver(), workers=args.workers)
    print(f"Update {args.update_id} applied: {len(report.installed)} written, {len(report.removed)} removed")
    return 0


def cmd_publish(args: argparse.Namespace) -> int:
    manifest = _read_manifest(args.manifest)
    config_dir = args.config_dir or args.manifest.parent
    config_files = _read_config_files(manifest, config_dir)
    update_id = publish_update(_store(args), manifest, config_files, update_id=args.update_id, message=args.message)
    print(update_id)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    record = InstallRecord.load(args.root)
    if record is None:
        print(f"No update recorded for {args.root}")
        return 0
    counts = {category.value: len(record.manifest.addons(category)) for category in Category}
    print(f"Update: {record.update_id or '(local)'}")
    print(f"Installed at: {record.installed_at or 'unknown'}")
    for name, count in counts.items():
        print(f"  {name}: {count}")
    print(f"  config files: {len(record.manifest.config_files)}")
    if not args.verify:
        return 0
    problems = verify_installed(args.root, record.manifest)
    for path, problem in problems:
        print(f"  {problem}: {path}")
    if problems:
        return 1
    print("All recorded addons present")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="modsync", description="Keep a modpack in sync with a published manifest")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_remote_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--repo", help="Update repository as owner/name (default: $MODSYNC_REPO)")
        sub.add_argument("--branch", default=config.UPDATE_BRANCH, help="Branch holding updates")
        sub.add_argument("--token", help="GitHub token (default: $MODSYNC_GITHUB_TOKEN)")

    diff_parser = subparsers.add_parser("diff", help="Show what applying NEW over OLD would change")
    diff_parser.add_argument("old", type=Path, nargs="?", help="Currently installed manifest")
    diff_parser.add_argument("new", type=Path, help="Target manifest")
    diff_parser.add_argument("--json", action="store_true", help="Print the preview as JSON")
    diff_parser.set_defaults(func=cmd_diff)

    install_parser = subparsers.add_parser("install", help="Apply a published update to an installation")
    install_parser.add_argument("root", type=Path, help="Installation root (instance directory)")
    install_parser.add_argument("update_id", help="Update id to apply")
    install_parser.add_argument("--workers", "-w", type=int, default=config.DOWNLOAD_WORKERS,
                                help=f"Parallel downloads (default: {config.DOWNLOAD_WORKERS})")
    install_parser.add_argument("--dry-run", action="store_true", help="Only show the changes")
    add_remote_args(install_parser)
    install_parser.set_defaults(func=cmd_install)

    publish_parser = subparsers.add_parser("publish", help="Publish a manifest and its config files")
    publish_parser.add_argument("manifest", type=Path, help="Manifest JSON file")
    publish_parser.add_argument("--config-dir", type=Path, help="Directory the config paths are relative to")
    publish_parser.add_argument("--update-id", help="Update id (default: a new uuid)")
    publish_parser.add_argument("--message", "-m", help="Commit message")
    add_remote_args(publish_parser)
    publish_parser.set_defaults(func=cmd_publish)

    status_parser = subparsers.add_parser("status", help="Show the update recorded for an installation")
    status_parser.add_argument("root", type=Path)
    status_parser.add_argument("--verify", action="store_true", help="Check recorded addons against the files on disk")
    status_parser.set_defaults(func=cmd_status)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except ModsyncError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
