import os
import logging
import tempfile
from pathlib import Path
from typing import Iterable, List

from depwatch.core.model import AuditResult
from depwatch.core.watchlist import AuditConfig

HEADER = ("package", "present", "version", "immediate_parent", "parent_chain")


def quote_field(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def render_rows(result: AuditResult, watchlist: Iterable[str]) -> List[str]:
    """Rows follow watchlist order, not discovery order."""
    lines = [f"Status,{result.status}", "", ",".join(HEADER)]

    for name in watchlist:
        occurrences = result.results.get(name)
        if not occurrences:
            lines.append(",".join([name, "no", "", "", ""]))
            continue

        for occ in occurrences:
            lines.append(",".join([
                name,
                "yes",
                occ.version,
                occ.immediate_parent,
                quote_field(occ.parent_chain),
            ]))

    return lines


def render_report(result: AuditResult, watchlist: Iterable[str]) -> str:
    return "\n".join(render_rows(result, watchlist))


def write_report(project_dir: str, result: AuditResult, config: AuditConfig) -> Path:
    out_path = Path(project_dir) / config.report_name
    content = render_report(result, config.watchlist)

    # Write beside the target and swap, so a failure never leaves a partial report
    fd, tmp_name = tempfile.mkstemp(prefix=".depwatch-", suffix=".tmp", dir=str(out_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, out_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logging.info(f"Report written to {out_path}")
    return out_path
