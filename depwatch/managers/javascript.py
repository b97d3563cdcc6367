import os
import json
import logging
import subprocess
from typing import Any, Dict, Iterable, List, Optional

from depwatch.core.errors import ReinstallError, ResolutionError
from depwatch.core.model import UNKNOWN_VERSION, DependencyNode
from depwatch.managers.base import PackageManager


NPM = "npm.cmd" if os.name == "nt" else "npm"


class NodeManager(PackageManager):
    @property
    def name(self) -> str:
        return "NPM"

    @property
    def manifest_file(self) -> str:
        return "package.json"

    @property
    def lock_files(self) -> List[str]:
        return ["package-lock.json", "npm-shrinkwrap.json", "pnpm-lock.yaml", "yarn.lock"]

    @property
    def install_dirs(self) -> List[str]:
        return ["node_modules"]

    def resolve_tree(self, project_dir: str, packages: Iterable[str],
                     timeout: Optional[float] = None) -> DependencyNode:
        cmd = [NPM, "ls", *packages, "--all", "--json"]
        logging.debug(f"Running {' '.join(cmd)} in {project_dir}")

        try:
            proc = subprocess.run(
                cmd,
                cwd=project_dir,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            raise ResolutionError("npm was not found on PATH. Install Node.js/npm and retry.")
        except subprocess.TimeoutExpired:
            raise ResolutionError(f"npm ls did not finish within {timeout:g} seconds.")

        # npm ls exits non-zero on peer/extraneous problems but still prints the tree
        if proc.returncode != 0:
            logging.info(f"npm ls exited with code {proc.returncode}, looking for JSON output anyway")

        data = self._parse_json(proc.stdout)
        if data is None:
            data = self._parse_json(proc.stderr)

        if data is None:
            first_err = next((line for line in (proc.stderr or "").splitlines() if line.strip()), "no output")
            raise ResolutionError(
                f"Failed to parse npm ls JSON (exit code {proc.returncode}): {first_err}"
            )

        # an error payload without a tree means npm could not read the project
        error = data.get("error")
        if error and "dependencies" not in data:
            if not isinstance(error, dict):
                error = {"summary": str(error)}
            code = error.get("code", "unknown")
            summary = (error.get("summary") or "").strip().splitlines()
            raise ResolutionError(
                f"npm ls reported {code} (exit code {proc.returncode}): {summary[0] if summary else 'no details'}"
            )

        root = self.build_tree(data, os.path.basename(os.path.abspath(project_dir)))
        logging.debug(f"Tree built for {root.token}, {len(root.children)} top-level dependencies.")
        return root

    @staticmethod
    def _parse_json(text: Optional[str]) -> Optional[Dict[str, Any]]:
        if not text or not text.strip():
            return None
        try:
            data = json.loads(text)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def build_tree(data: Dict[str, Any], default_name: str = "project") -> DependencyNode:
        def build(name, current_data, depth=0):
            version = current_data.get("version") or UNKNOWN_VERSION
            node = DependencyNode(name, version, expanded=(depth == 0))

            dependencies = current_data.get("dependencies") or {}
            for dep_name, dep_data in dependencies.items():
                if not isinstance(dep_data, dict):
                    dep_data = {}
                node.children.append(build(dep_name, dep_data, depth + 1))
            return node

        return build(data.get("name") or default_name, data)

    def reinstall(self, project_dir: str) -> None:
        # output goes straight to the terminal
        try:
            logging.info("Running npm ci")
            subprocess.run([NPM, "ci"], cwd=project_dir, check=True)
            return
        except FileNotFoundError:
            raise ReinstallError("npm was not found on PATH.")
        except subprocess.CalledProcessError as e:
            logging.warning(f"npm ci failed with code {e.returncode}, falling back to npm install")

        try:
            subprocess.run([NPM, "install"], cwd=project_dir, check=True)
        except subprocess.CalledProcessError as e:
            raise ReinstallError(f"npm install failed with exit code {e.returncode}", e.returncode)
