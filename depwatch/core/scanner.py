import logging
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from depwatch.core.model import ROOT, UNKNOWN_VERSION, AuditResult, DependencyNode, Occurrence
from depwatch.core.watchlist import AuditConfig

# npm trees are acyclic; this only guards the interpreter stack
MAX_DEPTH = 200

Results = Dict[str, List[Occurrence]]


def traverse(
    node: DependencyNode,
    watchlist: Iterable[str],
    chain: Tuple[str, ...] = (),
    results: Optional[Results] = None,
    max_depth: int = MAX_DEPTH,
) -> Results:
    """
    Depth-first walk recording every position of a watched package.
    `chain` holds the name@version tokens between the project root and `node`.
    """
    if results is None:
        results = {}
    if not isinstance(watchlist, (set, frozenset)):
        watchlist = frozenset(watchlist)

    if len(chain) >= max_depth:
        logging.warning(f"Depth limit {max_depth} reached below {chain[-1]}, subtree skipped")
        return results

    for child in node.children:
        version = child.version or UNKNOWN_VERSION
        token = f"{child.name}@{version}"
        if child.name in watchlist:
            results.setdefault(child.name, []).append(
                Occurrence(
                    name=child.name,
                    version=version,
                    immediate_parent=chain[-1] if chain else ROOT,
                    chain=(ROOT,) + chain + (token,),
                )
            )
        traverse(child, watchlist, chain + (token,), results, max_depth)

    return results


def classify(results: Results, bad_versions: Mapping[str, FrozenSet[str]]) -> List[Occurrence]:
    flagged = []
    for name, occurrences in results.items():
        bad = bad_versions.get(name)
        if not bad:
            continue
        flagged.extend(occ for occ in occurrences if occ.version in bad)
    return flagged


def is_infected(results: Results, bad_versions: Mapping[str, FrozenSet[str]]) -> bool:
    return bool(classify(results, bad_versions))


def audit_tree(root: DependencyNode, config: AuditConfig) -> AuditResult:
    results = traverse(root, config.watchlist)
    flagged = classify(results, config.bad_versions)

    total = sum(len(occs) for occs in results.values())
    logging.info(f"Traversal done. {total} occurrences of {len(results)} watched packages, {len(flagged)} known-bad.")

    return AuditResult(results=results, infected=bool(flagged), flagged=flagged)


def run_audit(project_dir: str, manager, config: AuditConfig) -> AuditResult:
    logging.info(f"Auditing {project_dir} with {manager.name}")
    root = manager.resolve_tree(project_dir, config.watchlist, timeout=config.resolver_timeout)
    return audit_tree(root, config)


def mark_tree(node: DependencyNode, config: AuditConfig) -> None:
    """Flags watched and known-bad nodes in place for the tree browser."""
    node.watched = node.name in config.watchlist
    node.compromised = node.version in config.bad_versions.get(node.name, ())

    for child in node.children:
        mark_tree(child, config)
