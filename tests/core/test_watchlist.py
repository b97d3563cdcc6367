import os
import tempfile
import unittest

from depwatch.core.errors import ConfigError
from depwatch.core.watchlist import BAD_VERSIONS, SAFE_OVERRIDES, WATCHLIST, load_config


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, content, name="depwatch.toml"):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_defaults_without_file(self):
        config = load_config(self.tmp.name)

        self.assertEqual(config.watchlist, WATCHLIST)
        self.assertEqual(config.bad_versions, BAD_VERSIONS)
        self.assertEqual(config.safe_overrides, SAFE_OVERRIDES)
        self.assertEqual(config.report_name, "malware-audit.csv")
        self.assertEqual(config.resolver_timeout, 300.0)

    def test_project_file_extends_builtins(self):
        self.write("""
watch = ["left-pad", "chalk"]
report = "audit.csv"
resolver_timeout = 0

[bad_versions]
chalk = ["5.6.2"]
left-pad = ["1.3.1"]

[safe_overrides]
chalk = "5.2.0"
""")
        config = load_config(self.tmp.name)

        self.assertEqual(config.watchlist[:len(WATCHLIST)], WATCHLIST)
        self.assertEqual(config.watchlist[-1], "left-pad")
        self.assertEqual(config.watchlist.count("chalk"), 1)
        self.assertEqual(config.bad_versions["chalk"], frozenset({"5.3.1", "5.6.1", "5.6.2"}))
        self.assertEqual(config.bad_versions["left-pad"], frozenset({"1.3.1"}))
        self.assertEqual(config.safe_overrides["chalk"], "5.2.0")
        self.assertEqual(config.safe_overrides["has-ansi"], "5.0.1")
        self.assertEqual(config.report_name, "audit.csv")
        self.assertIsNone(config.resolver_timeout)

    def test_builtin_tables_are_not_mutated(self):
        self.write('[bad_versions]\ndebug = ["4.4.3"]\n')
        load_config(self.tmp.name)
        self.assertEqual(BAD_VERSIONS["debug"], frozenset({"4.4.2"}))

    def test_explicit_missing_path(self):
        with self.assertRaises(ConfigError):
            load_config(self.tmp.name, os.path.join(self.tmp.name, "nope.toml"))

    def test_explicit_path_outside_project(self):
        path = self.write('watch = ["event-stream"]\n', name="custom.toml")
        config = load_config("/nonexistent", path)
        self.assertIn("event-stream", config.watchlist)

    def test_invalid_types(self):
        for content in ('watch = "chalk"\n', '[bad_versions]\nchalk = "5.3.1"\n',
                        'resolver_timeout = "soon"\n', 'report = ""\n', 'bad_versions = 3\n',
                        'report = "sub/audit.csv"\n', 'report = "../audit.csv"\n', 'report = ".."\n'):
            with self.subTest(content=content):
                self.write(content)
                with self.assertRaises(ConfigError):
                    load_config(self.tmp.name)

    def test_malformed_toml(self):
        self.write("watch = [\n")
        with self.assertRaises(ConfigError):
            load_config(self.tmp.name)
