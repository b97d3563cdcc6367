import os
import json
import shutil
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping

from rich.console import Console

from depwatch.core.errors import ManifestError, MissingManifestError
from depwatch.core.watchlist import AuditConfig
from depwatch.managers.base import PackageManager


def load_manifest(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise MissingManifestError(f"{path.name} not found in {path.parent}. Run from a Node project root.")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except ValueError as e:
        raise ManifestError(f"{path} is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ManifestError(f"{path} must contain a JSON object.")
    return data


def write_manifest(path: Path, manifest: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(json.dumps(manifest, indent=2, ensure_ascii=False) + "\n")


def backup_manifest(path: Path) -> Path:
    backup = path.with_name(path.name + ".bak")
    if backup.exists():
        # keep the earlier backup, it may be the only clean copy
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        backup = path.with_name(f"{path.name}.bak.{stamp}")
    shutil.copy2(path, backup)
    return backup


def merge_overrides(manifest: Dict[str, Any], overrides: Mapping[str, str]) -> List[str]:
    """
    Adds the missing entries of `overrides` to manifest["overrides"].
    Existing entries are kept untouched, so running it twice changes nothing.
    """
    current = manifest.setdefault("overrides", {})
    if not isinstance(current, dict):
        raise ManifestError("The 'overrides' field of the manifest must be an object.")

    added = []
    for name, version in overrides.items():
        if name not in current:
            current[name] = version
            added.append(name)
    return added


def purge_install_state(project_dir: str, manager: PackageManager) -> List[Path]:
    removed = []
    for entry in manager.install_dirs + manager.lock_files:
        target = Path(project_dir) / entry
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()
        else:
            continue
        logging.info(f"Removed {target}")
        removed.append(target)
    return removed


def remediate(project_dir: str, manager: PackageManager, config: AuditConfig, console: Console) -> None:
    manifest_path = Path(project_dir) / manager.manifest_file
    manifest = load_manifest(manifest_path)

    backup = backup_manifest(manifest_path)
    console.print(f"Created backup: {backup}")

    added = merge_overrides(manifest, config.safe_overrides)
    write_manifest(manifest_path, manifest)
    if added:
        console.print(f"Applied safe overrides to {manifest_path.name}: {', '.join(added)}")
    else:
        console.print(f"All safe overrides already present in {manifest_path.name}")

    removed = purge_install_state(project_dir, manager)
    if removed:
        console.print(f"Removed {', '.join(p.name for p in removed)}")
    else:
        console.print("No installed modules or lockfiles to remove")

    console.print(f"Reinstalling dependencies with {manager.name}...")
    manager.reinstall(os.path.abspath(project_dir))

    console.print("\n[green]Done.[/] Your dependencies have been reinstalled with safe overrides.")
