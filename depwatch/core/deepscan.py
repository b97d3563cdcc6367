"""
Optional deep scan with SafeDep's third-party `vet` tool.

Nothing is installed, downloaded or executed without an explicit "yes" at a
prompt that names the action and where it comes from. Review the tool first:
https://github.com/safedep/vet
"""
import os
import sys
import shutil
import logging
import subprocess
import zipfile
from pathlib import Path
from typing import IO, List, Optional

import httpx
from rich.console import Console
from rich.markup import escape

from depwatch.core.errors import DepwatchError, ScanToolError

VET_REPO = "https://github.com/safedep/vet"
VET_WINDOWS_DOWNLOAD = "https://github.com/safedep/vet/releases/download/v1.12.5/vet_Windows_x86_64.zip"
BREW_INSTALL = '/bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"'
VET_CACHE_DIR = Path.home() / ".depwatch" / "vet"


def read_answer(console: Console, prompt: str, stream: Optional[IO[str]] = None) -> str:
    """Closed or non-interactive input counts as an empty answer."""
    try:
        return console.input(prompt, stream=stream).strip()
    except EOFError:
        console.print()
        return ""


def confirm(console: Console, message: str, stream: Optional[IO[str]] = None) -> bool:
    answer = read_answer(console, f"{escape(message)} \\[y/N]: ", stream)
    return answer.lower() in ("y", "yes")


def download_vet(url: str, dest_dir: Path, transport: Optional[httpx.BaseTransport] = None) -> Path:
    """Downloads the release archive and returns the extracted vet.exe."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    archive = dest_dir / url.rsplit("/", 1)[-1]

    logging.info(f"Downloading {url} to {archive}")
    with httpx.Client(timeout=60.0, follow_redirects=True, transport=transport) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(archive, "wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)

    with zipfile.ZipFile(archive) as zf:
        members = [m for m in zf.namelist() if m.replace("\\", "/").rsplit("/", 1)[-1].lower() == "vet.exe"]
        if not members:
            raise FileNotFoundError(f"vet.exe not found inside {archive.name}")
        extracted = zf.extract(members[0], dest_dir)

    return Path(extracted)


class DeepScanner:
    def __init__(
        self,
        console: Console,
        project_dir: str,
        stream: Optional[IO[str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        cache_dir: Path = VET_CACHE_DIR,
    ) -> None:
        self.console = console
        self.project_dir = os.path.abspath(project_dir)
        self.stream = stream
        self.transport = transport
        self.cache_dir = cache_dir

    def confirm(self, message: str) -> bool:
        return confirm(self.console, message, self.stream)

    def ask(self, message: str) -> str:
        return read_answer(self.console, escape(message), self.stream)

    def run(self, platform: str = sys.platform) -> None:
        self.console.print("[bold]Deep Scan using SafeDep vet (third-party)[/]")
        self.console.print(f"Please verify the project yourself before proceeding: {VET_REPO}")

        if platform == "darwin" or platform.startswith("linux"):
            vet_cmd = self._prepare_unix()
        elif platform == "win32":
            vet_cmd = self._prepare_windows()
        else:
            self.console.print(
                f"Unsupported platform: {platform}. Please install vet manually from {VET_REPO}/releases"
            )
            return

        if vet_cmd:
            self.run_vet(vet_cmd)

    def _prepare_unix(self) -> Optional[str]:
        if not shutil.which("brew"):
            if not self.confirm("\nHomebrew not detected. Install Homebrew now?"):
                self.console.print("Homebrew installation declined. You can install vet via direct binary or container.")
            elif not self.confirm("Homebrew will be downloaded from https://brew.sh. Continue?"):
                self.console.print("Declined.")
                return None
            else:
                try:
                    subprocess.run(BREW_INSTALL, shell=True, check=True)
                    self.console.print("Homebrew installed. Please ensure brew is on your PATH.")
                except subprocess.CalledProcessError as e:
                    logging.error(f"Homebrew installer exited with {e.returncode}")
                    self.console.print("[red]Homebrew installation failed or was interrupted.[/]")
                    return None

        if not shutil.which("vet"):
            if not self.confirm("\nInstall safedep/tap/vet via Homebrew now?"):
                self.console.print("Declined vet installation.")
                return None
            if not self.confirm("We will run: brew tap safedep/tap && brew install safedep/tap/vet. Continue?"):
                self.console.print("Declined.")
                return None
            try:
                subprocess.run(["brew", "tap", "safedep/tap"], check=True)
                subprocess.run(["brew", "install", "safedep/tap/vet"], check=True)
            except (OSError, subprocess.CalledProcessError) as e:
                logging.error(f"brew failed: {e}")
                self.console.print("[red]Failed to install vet via Homebrew.[/]")
                return None

        return "vet"

    def _prepare_windows(self) -> Optional[str]:
        self.console.print("\nWindows detected. Official binary URL:")
        self.console.print(VET_WINDOWS_DOWNLOAD)

        if self.confirm(f"Download vet from the URL above into {self.cache_dir}?"):
            try:
                vet_path = download_vet(VET_WINDOWS_DOWNLOAD, self.cache_dir, self.transport)
            except (httpx.HTTPError, zipfile.BadZipFile, OSError) as e:
                logging.error(f"vet download failed: {e}")
                self.console.print(f"[red]Download failed:[/] {escape(str(e))}")
                return None
            self.console.print(f"Extracted {escape(str(vet_path))}")
            return str(vet_path)

        self.console.print("Download canceled. If you already have vet, provide the full path to vet.exe.")
        vet_path = self.ask("Path to vet.exe (empty to abort): ")
        if not vet_path:
            self.console.print("Aborted.")
            return None
        if not os.path.isfile(vet_path):
            self.console.print("[red]Invalid path to vet.exe. Aborting.[/]")
            return None
        return vet_path

    def _scan(self, vet_cmd: str, mode: str) -> None:
        args: List[str] = [vet_cmd, "scan", "-D", self.project_dir, mode]
        logging.info(f"Running {' '.join(args)}")
        try:
            proc = subprocess.run(args)
        except OSError as e:
            raise DepwatchError(f"Cannot run {vet_cmd}: {e}")
        if proc.returncode != 0:
            raise ScanToolError("vet", proc.returncode)

    def run_vet(self, vet_cmd: str) -> None:
        self.console.print(f"\nAbout to run: {escape(vet_cmd)} scan -D {escape(self.project_dir)} --malware-query")
        if not self.confirm("Proceed to run vet in query-only mode (no API key)?"):
            self.console.print("Aborted.")
            return
        self._scan(vet_cmd, "--malware-query")

        if not self.confirm(
            "\nEnable active malware analysis (--malware)? Requires SafeDep Cloud API key (free for OSS)."
        ):
            self.console.print("\nCompleted query-only scan.")
            return

        self.console.print("\nTip: Run `vet cloud quickstart` to set up your API key if not already configured.")
        if not self.confirm(f"Proceed with `vet scan -D {self.project_dir} --malware` now?"):
            self.console.print("Skipped active analysis.")
            return
        self._scan(vet_cmd, "--malware")
