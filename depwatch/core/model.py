from dataclasses import dataclass, field
from typing import List, Dict, Tuple

ROOT = "ROOT"
UNKNOWN_VERSION = "unknown"


@dataclass
class DependencyNode:
    name: str
    version: str = UNKNOWN_VERSION
    children: List['DependencyNode'] = field(default_factory=list)

    # Audit flags
    watched: bool = False
    compromised: bool = False

    # UI
    expanded: bool = False

    @property
    def token(self) -> str:
        return f"{self.name}@{self.version or UNKNOWN_VERSION}"


@dataclass(frozen=True)
class Occurrence:
    """One position of a watched package inside the resolved tree."""

    name: str
    version: str
    immediate_parent: str
    chain: Tuple[str, ...]

    @property
    def parent_chain(self) -> str:
        return " -> ".join(self.chain)

    @property
    def depth(self) -> int:
        return len(self.chain) - 1


@dataclass
class AuditResult:
    results: Dict[str, List[Occurrence]] = field(default_factory=dict)
    infected: bool = False
    flagged: List[Occurrence] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "Infected" if self.infected else "Safe"
