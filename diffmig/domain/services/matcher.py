"""Record Matcher Service.

Pairs records between the old and new snapshot by identity.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - The union/ordering policy is shared with the structural differ, which
      applies it to children at every level of the tree
"""

import logging
from typing import Dict, Hashable, Iterable, List, Optional, Tuple, TypeVar

from diffmig.domain.diff_models import MatchedPair
from diffmig.domain.records import RecordSet

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
V = TypeVar('V')


def match_keys(
    old: Iterable[Tuple[K, V]],
    new: Iterable[Tuple[K, V]]
) -> List[Tuple[K, Optional[V], Optional[V]]]:
    """Pair two keyed sequences over the union of their keys.

    Keys are emitted in the order they first appear in ``old``, followed by
    keys only present in ``new`` in their ``new`` order. Keys must be unique
    within each side.

    Parameters:
        old: (key, value) pairs from the old side
        new: (key, value) pairs from the new side

    Returns:
        List of (key, old_value or None, new_value or None)
    """
    new_by_key: Dict[K, V] = dict(new)
    pairs: List[Tuple[K, Optional[V], Optional[V]]] = []
    seen = set()

    for key, old_value in old:
        seen.add(key)
        pairs.append((key, old_value, new_by_key.get(key)))

    for key, new_value in new_by_key.items():
        if key not in seen:
            pairs.append((key, None, new_value))

    return pairs


class RecordMatcher:
    """Service pairing top-level records of two snapshots by RecordId."""

    def match(self, old: RecordSet, new: RecordSet) -> List[MatchedPair]:
        """Match two record sets.

        Parameters:
            old: Records from the old snapshot
            new: Records from the new snapshot

        Returns:
            One MatchedPair per identifier in either set, in deterministic order
        """
        old_positions = {record_id: position for position, record_id in enumerate(old)}
        new_positions = {record_id: position for position, record_id in enumerate(new)}
        pairs = [
            MatchedPair(
                record_id=record_id,
                old=old_record,
                new=new_record,
                index=index,
                old_position=old_positions.get(record_id),
                new_position=new_positions.get(record_id),
            )
            for index, (record_id, old_record, new_record)
            in enumerate(match_keys(old.items(), new.items()))
        ]

        logger.debug(
            f"Matched {len(pairs)} records: "
            f"{sum(1 for p in pairs if p.is_matched)} in both, "
            f"{sum(1 for p in pairs if p.is_removed)} only old, "
            f"{sum(1 for p in pairs if p.is_added)} only new"
        )
        return pairs
