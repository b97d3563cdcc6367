import io
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from rich.console import Console

from depwatch.core.errors import ManifestError, MissingManifestError, ReinstallError
from depwatch.core.remediate import (
    backup_manifest,
    load_manifest,
    merge_overrides,
    purge_install_state,
    remediate,
)
from depwatch.core.watchlist import SAFE_OVERRIDES, default_config
from depwatch.managers.javascript import NodeManager


class TestMergeOverrides(unittest.TestCase):

    def test_adds_missing_overrides(self):
        manifest = {"name": "app", "dependencies": {"chalk": "^5.0.0"}}

        added = merge_overrides(manifest, SAFE_OVERRIDES)

        self.assertEqual(manifest["overrides"], SAFE_OVERRIDES)
        self.assertEqual(added, list(SAFE_OVERRIDES))
        self.assertEqual(manifest["dependencies"], {"chalk": "^5.0.0"})

    def test_existing_override_is_kept(self):
        manifest = {"overrides": {"chalk": "5.9.9"}}

        added = merge_overrides(manifest, SAFE_OVERRIDES)

        self.assertEqual(manifest["overrides"]["chalk"], "5.9.9")
        self.assertNotIn("chalk", added)
        self.assertEqual(manifest["overrides"]["strip-ansi"], "7.1.0")

    def test_empty_string_override_is_not_replaced(self):
        manifest = {"overrides": {"debug": ""}}
        merge_overrides(manifest, {"debug": "4.4.1"})
        self.assertEqual(manifest["overrides"]["debug"], "")

    def test_merge_is_idempotent(self):
        manifest = {"overrides": {"chalk": "5.9.9", "lodash": "4.17.21"}}

        merge_overrides(manifest, SAFE_OVERRIDES)
        once = json.dumps(manifest["overrides"])
        added = merge_overrides(manifest, SAFE_OVERRIDES)

        self.assertEqual(added, [])
        self.assertEqual(json.dumps(manifest["overrides"]), once)

    def test_non_object_overrides_rejected(self):
        with self.assertRaises(ManifestError):
            merge_overrides({"overrides": "chalk@5.3.0"}, SAFE_OVERRIDES)


class TestManifestFiles(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name)
        self.manifest = self.root / "package.json"

    def test_missing_manifest(self):
        with self.assertRaises(MissingManifestError):
            load_manifest(self.manifest)

    def test_invalid_manifest(self):
        self.manifest.write_text("{ not json", encoding="utf-8")
        with self.assertRaises(ManifestError):
            load_manifest(self.manifest)

        self.manifest.write_text("[]", encoding="utf-8")
        with self.assertRaises(ManifestError):
            load_manifest(self.manifest)

    def test_backup_never_clobbers_previous_backup(self):
        self.manifest.write_text('{"name": "v1"}', encoding="utf-8")
        first = backup_manifest(self.manifest)

        self.manifest.write_text('{"name": "v2"}', encoding="utf-8")
        second = backup_manifest(self.manifest)

        self.assertEqual(first.name, "package.json.bak")
        self.assertTrue(second.name.startswith("package.json.bak."))
        self.assertEqual(first.read_text(encoding="utf-8"), '{"name": "v1"}')
        self.assertEqual(second.read_text(encoding="utf-8"), '{"name": "v2"}')

    def test_purge_removes_modules_and_lockfiles(self):
        (self.root / "node_modules" / "chalk").mkdir(parents=True)
        (self.root / "node_modules" / "chalk" / "index.js").write_text("", encoding="utf-8")
        (self.root / "package-lock.json").write_text("{}", encoding="utf-8")
        (self.root / "yarn.lock").write_text("", encoding="utf-8")
        self.manifest.write_text("{}", encoding="utf-8")

        removed = purge_install_state(self.tmp.name, NodeManager())

        self.assertEqual([p.name for p in removed], ["node_modules", "package-lock.json", "yarn.lock"])
        self.assertEqual(os.listdir(self.tmp.name), ["package.json"])

    def test_purge_with_nothing_installed(self):
        self.assertEqual(purge_install_state(self.tmp.name, NodeManager()), [])


class TestRemediate(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name)
        self.console = Console(file=io.StringIO(), width=120)
        self.manager = NodeManager()

    def test_full_fix_flow(self):
        original = {"name": "app", "version": "1.0.0", "overrides": {"chalk": "5.9.9"}}
        (self.root / "package.json").write_text(json.dumps(original), encoding="utf-8")
        (self.root / "package-lock.json").write_text("{}", encoding="utf-8")
        (self.root / "node_modules").mkdir()

        with patch.object(NodeManager, "reinstall") as mock_reinstall:
            remediate(self.tmp.name, self.manager, default_config(), self.console)

        mock_reinstall.assert_called_once_with(os.path.abspath(self.tmp.name))
        written = json.loads((self.root / "package.json").read_text(encoding="utf-8"))
        self.assertEqual(written["overrides"]["chalk"], "5.9.9")
        self.assertEqual(written["overrides"]["has-ansi"], "5.0.1")
        self.assertEqual(list(written), ["name", "version", "overrides"])
        self.assertTrue((self.root / "package.json").read_text(encoding="utf-8").endswith("}\n"))

        backup = json.loads((self.root / "package.json.bak").read_text(encoding="utf-8"))
        self.assertEqual(backup, original)
        self.assertFalse((self.root / "package-lock.json").exists())
        self.assertFalse((self.root / "node_modules").exists())

    def test_missing_manifest_mutates_nothing(self):
        (self.root / "package-lock.json").write_text("{}", encoding="utf-8")

        with patch.object(NodeManager, "reinstall") as mock_reinstall:
            with self.assertRaises(MissingManifestError):
                remediate(self.tmp.name, self.manager, default_config(), self.console)

        mock_reinstall.assert_not_called()
        self.assertEqual(os.listdir(self.tmp.name), ["package-lock.json"])

    def test_reinstall_failure_is_surfaced(self):
        (self.root / "package.json").write_text("{}", encoding="utf-8")

        with patch.object(NodeManager, "reinstall", side_effect=ReinstallError("npm install failed", 1)):
            with self.assertRaises(ReinstallError):
                remediate(self.tmp.name, self.manager, default_config(), self.console)
