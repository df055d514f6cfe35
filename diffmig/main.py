"""Diff pipeline for diffmig.

This module wires the diff engine together: load both snapshots, restrict
them to the requested scope, match records, diff every matched pair and
assemble the report.

Architecture:
    - Follows Hexagonal Architecture principles
    - Loaders are selected automatically based on source format
    - Configuration is passed in explicitly as a DiffConfig
    - Single-threaded by default; with workers > 1 matched pairs are diffed
      on a thread pool and the assembler restores matcher order
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Tuple

from diffmig.adapters.loaders import get_loader
from diffmig.domain.diff_models import DiffReport, MatchedPair
from diffmig.domain.ports import LoadError, Snapshot
from diffmig.domain.records import RecordSet
from diffmig.domain.services import (
    PairDiff,
    RecordMatcher,
    ReportAssembler,
    StructuralDiffer,
    filter_record_set,
)
from diffmig.infrastructure.config_manager import DiffConfig

logger = logging.getLogger(__name__)


def load_snapshots(
    old_path: str,
    new_path: str,
    config: DiffConfig,
    on_loaded: Optional[Callable[[Snapshot], None]] = None
) -> Tuple[Snapshot, Snapshot]:
    """Load the old and new snapshots, failing fast on the first error.

    Parameters:
        old_path: Archive of the pre-migration snapshot
        new_path: Archive of the post-migration snapshot
        config: Run configuration
        on_loaded: Optional callback after each snapshot is loaded (progress)

    Returns:
        (old snapshot, new snapshot)

    Raises:
        LoadError: If either archive fails to load, or the archives hold
                   clinical data for different registries
    """
    snapshots = []
    for path in (old_path, new_path):
        loader = get_loader(path, trace=config.debug)
        snapshot = loader.load_snapshot(path)
        snapshots.append(snapshot)
        if on_loaded is not None:
            on_loaded(snapshot)

    old, new = snapshots
    if old.member != new.member:
        logger.error("Registry clinical data paths don't match")
        logger.debug(f"Old path: {old.member}")
        logger.debug(f"New path: {new.member}")
        raise LoadError(
            f"Registry clinical data paths don't match: '{old.member}' vs '{new.member}'",
            source=new_path,
            details={"old_member": old.member, "new_member": new.member},
        )
    return old, new


def diff_pairs(pairs: List[MatchedPair], config: DiffConfig) -> List[PairDiff]:
    """Run the structural differ over every matched pair.

    Parameters:
        pairs: Pairs from the matcher
        config: Run configuration (workers, debug)

    Returns:
        One PairDiff per pair with both sides present; order is completion
        order when running in parallel
    """
    differ = StructuralDiffer(trace=config.debug)
    matched = [p for p in pairs if p.is_matched]

    if config.workers <= 1 or len(matched) <= 1:
        return [differ.diff_pair(p) for p in matched]

    logger.debug(f"Diffing {len(matched)} matched pairs on {config.workers} threads")
    results: List[PairDiff] = []
    with ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix="differ") as executor:
        futures = [executor.submit(differ.diff_pair, p) for p in matched]
        for future in as_completed(futures):
            results.append(future.result())
    return results


def diff_record_sets(old: RecordSet, new: RecordSet, config: Optional[DiffConfig] = None) -> DiffReport:
    """Compare two loaded record sets.

    Parameters:
        old: Records of the old snapshot
        new: Records of the new snapshot
        config: Run configuration (defaults to DiffConfig())

    Returns:
        DiffReport for the requested scope
    """
    config = config or DiffConfig()

    old = filter_record_set(old, config.scope)
    new = filter_record_set(new, config.scope)

    pairs = RecordMatcher().match(old, new)
    report = ReportAssembler().assemble(pairs, diff_pairs(pairs, config))

    for warning in report.warnings:
        logger.debug(warning.message())
    return report


def run_diff(
    old_path: str,
    new_path: str,
    config: DiffConfig,
    on_loaded: Optional[Callable[[Snapshot], None]] = None
) -> DiffReport:
    """Run the complete pipeline on two archives.

    Parameters:
        old_path: Archive of the pre-migration snapshot
        new_path: Archive of the post-migration snapshot
        config: Run configuration
        on_loaded: Optional callback after each snapshot is loaded

    Returns:
        DiffReport

    Raises:
        LoadError: If either archive cannot be loaded
    """
    logger.info(f"Comparing {old_path} -> {new_path} (scope: {config.scope.value})")
    old, new = load_snapshots(old_path, new_path, config, on_loaded=on_loaded)
    report = diff_record_sets(old.records, new.records, config)
    logger.info(f"Found {report.summary.total_differences} differences")
    return report
