"""Command line surface: install, update, uninstall.

Exit codes: 0 ok, 1 cancelled, 2 precondition, 3 backup, 4 placement,
5 persistence.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

from autoskills import VERSION
from autoskills.application.use_cases.install import Installer
from autoskills.application.use_cases.target_helpers import eprint
from autoskills.application.use_cases.uninstall import Uninstaller
from autoskills.application.use_cases.update import UpdateResult, Updater
from autoskills.domain.errors import AutoSkillsError, LocalChangesError, PreconditionError, UserCancelled
from autoskills.domain.models import LOCAL_CHANGES_RESOLUTIONS, PLACEMENT_MODES, BackupSnapshot
from autoskills.infrastructure.backup_manager import BackupManager
from autoskills.infrastructure.error_log import record_error
from autoskills.infrastructure.path_contract import resolve_target_root

EXIT_OK = 0


def is_interactive() -> bool:
    # conservative: require both stdin and stdout to be TTY
    return sys.stdin.isatty() and sys.stdout.isatty()


def confirm(question: str, *, default: bool = False) -> bool:
    suffix = "[Y/n]" if default else "[y/N]"
    resp = input(f"{question} {suffix} ").strip().lower()
    if not resp:
        return default
    return resp in ("y", "yes")


def default_source_dir() -> Path:
    return Path.cwd()


def print_banner(command: str, target_root: Path) -> None:
    print("=" * 60)
    print(f"Auto-Skills {command} (installer {VERSION})")
    print(f"Target root: {target_root}")
    print("=" * 60)


def print_change_report(result: UpdateResult) -> None:
    report = result.report
    print("\n📋 Change summary")
    print(f"   Previous version: {report.old_version}")
    print(f"   Current version:  {report.new_version}")
    if not report.has_changes:
        print("   No resource content changed.")
        return
    for label, names in (("added", report.added), ("changed", report.changed), ("removed", report.removed)):
        for name in names:
            print(f"   • {name} ({label})")


def cmd_install(args: argparse.Namespace, target_root: Path) -> int:
    source = args.source_dir if args.source_dir is not None else default_source_dir()
    print(f"Source dir: {source}")
    if not args.force and is_interactive():
        if not confirm(f"\nInstall into {target_root}?", default=True):
            raise UserCancelled("installation cancelled", stage="confirm")
    result = Installer(target_root).run(source, mode=args.mode)
    if result.warnings:
        eprint(f"⚠️  Installed with {len(result.warnings)} verification warning(s).")
    return EXIT_OK


def ask_local_changes_choice() -> str:
    print("\nThe bundle checkout has uncommitted changes:")
    print("  1. commit them and continue")
    print("  2. stash them and continue")
    print("  3. abort")
    resp = input("Choice (1/2/3) [3]: ").strip()
    return {"1": "commit", "2": "stash"}.get(resp, "abort")


def cmd_update(args: argparse.Namespace, target_root: Path) -> int:
    updater = Updater(target_root)
    try:
        result = updater.run(on_local_changes=args.on_local_changes, remote=args.remote, branch=args.branch)
    except LocalChangesError:
        if args.on_local_changes is not None or args.force or not is_interactive():
            raise
        choice = ask_local_changes_choice()
        if choice == "abort":
            raise UserCancelled("update cancelled, checkout left as it was", stage="refresh")
        result = updater.run(on_local_changes=choice, remote=args.remote, branch=args.branch)
    print_change_report(result)
    return EXIT_OK


def cmd_uninstall(args: argparse.Namespace, target_root: Path) -> int:
    uninstaller = Uninstaller(target_root)
    plan = uninstaller.plan()
    print(f"Installed from: {plan.record.source_path} ({plan.record.version_tag})")
    if plan.removable:
        print("The following targets will be removed:")
        for d in plan.removable:
            print(f"  - {d.target_path}")
    for d in plan.edited:
        print(f"  (edited since install, a copy goes to {BackupManager(target_root).backups_root} first: {d.target_path})")
    for d in plan.foreign:
        print(f"  (kept, not placed by this installer: {d.target_path})")

    interactive = not args.force and is_interactive()
    if interactive and not confirm("Really uninstall?"):
        raise UserCancelled("uninstall cancelled", stage="confirm")

    restore = args.restore_backup
    if restore is None:
        latest = BackupManager(target_root).latest()
        restore = False
        if interactive and isinstance(latest, BackupSnapshot):
            restore = confirm(f"Restore original content from backup {latest.snapshot_id}?")

    purge = args.purge_source
    if purge and not args.force:
        if not is_interactive():
            raise UserCancelled("--purge-source needs --force when not running interactively", stage="confirm")
        print(f"\n⚠️  This permanently deletes {plan.record.source_path}")
        if input("Type DELETE to confirm: ").strip() != "DELETE":
            print("Source deletion cancelled, keeping the checkout.")
            purge = False

    result = uninstaller.run(restore_backup=restore, purge_source=purge)
    if result.purged_source is None and plan.record.source_path.exists():
        print(f"Bundle checkout kept at {plan.record.source_path}; reinstall with: autoskills install --source-dir {plan.record.source_path}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="autoskills", description="Install, update or remove the Auto-Skills bundle.")
    p.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--target-root",
        type=Path,
        default=None,
        help="Override the target root (default: $CLAUDE_CONFIG_DIR or ~/.claude).",
    )
    common.add_argument("--force", action="store_true", help="Never prompt; take flags and defaults as given.")

    sub = p.add_subparsers(dest="command", required=True)

    pi = sub.add_parser("install", parents=[common], help="Install or reinstall the bundle.")
    pi.add_argument("--source-dir", type=Path, default=None, help="Bundle directory (default: current directory).")
    pi.add_argument("--mode", choices=PLACEMENT_MODES, default=None, help="Global placement mode.")
    pi.set_defaults(handler=cmd_install)

    pu = sub.add_parser("update", parents=[common], help="Pull the bundle checkout and re-place resources.")
    pu.add_argument(
        "--on-local-changes",
        choices=LOCAL_CHANGES_RESOLUTIONS,
        default=None,
        help="What to do with uncommitted edits in the bundle checkout.",
    )
    pu.add_argument("--remote", default=None, help="Remote to pull from (default: tracking remote).")
    pu.add_argument("--branch", default=None, help="Branch to pull (requires --remote).")
    pu.set_defaults(handler=cmd_update)

    pr = sub.add_parser("uninstall", parents=[common], help="Remove placed resources and the installation record.")
    restore = pr.add_mutually_exclusive_group()
    restore.add_argument("--restore-backup", dest="restore_backup", action="store_true", default=None)
    restore.add_argument("--no-restore-backup", dest="restore_backup", action="store_false", default=None)
    pr.add_argument("--purge-source", action="store_true", help="Also delete the bundle checkout (irreversible).")
    pr.set_defaults(handler=cmd_uninstall)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    target_root = resolve_target_root(args.target_root)
    print_banner(args.command.upper(), target_root)
    try:
        return args.handler(args, target_root)
    except UserCancelled as exc:
        print(f"{exc.message}.")
        return exc.exit_code
    except PreconditionError as exc:
        # nothing was touched; the target root stays as it was
        eprint(f"❌ {exc.summary()}")
        return exc.exit_code
    except AutoSkillsError as exc:
        eprint(f"❌ {exc.summary()}")
        log_file = record_error(target_root, command=args.command, error=exc)
        if log_file is not None:
            eprint(f"   details: {log_file}")
        return exc.exit_code
    except KeyboardInterrupt:
        eprint("\nInterrupted.")
        return UserCancelled.exit_code


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
