"""
Resolve rider names to rider ids.

Ownership records imported from older games sometimes carry only a rider
name. Names are matched against reference riders by exact normalized name
first, then by fuzzy token-sort ratio (handles "Pogačar Tadej" vs
"Tadej Pogacar").
"""

import logging
import re
import unicodedata
from typing import Dict, Iterable, List, Optional

from fuzzywuzzy import fuzz, process

from .. import config
from .models import Rider, SoldRider

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Lowercase, strip accents, collapse everything else to hyphens."""
    text = unicodedata.normalize('NFD', name or '')
    text = ''.join(c for c in text if unicodedata.category(c) != 'Mn')
    text = re.sub(r'\s+', '-', text.lower())
    text = re.sub(r'[^a-z0-9-]', '', text)
    return re.sub(r'-+', '-', text).strip('-')


def match_rider_id(
    name: str,
    riders: Iterable[Rider],
    threshold: int = config.FUZZY_MATCH_THRESHOLD
) -> Optional[str]:
    """
    Match a rider name to a rider id.

    Args:
        name: Rider name as found in the record
        riders: Reference riders
        threshold: Minimum fuzzy score (0-100) to accept

    Returns:
        Rider id, or None if no confident match exists
    """
    riders = list(riders)
    if not name or not riders:
        return None

    wanted = normalize_name(name)
    by_name: Dict[str, Rider] = {}
    for rider in riders:
        by_name.setdefault(normalize_name(rider.name), rider)
        if rider.rider_id:
            by_name.setdefault(normalize_name(rider.rider_id), rider)

    if wanted in by_name:
        return by_name[wanted].rider_id

    choices = {key: key.replace('-', ' ') for key in by_name}
    match_result = process.extractOne(
        wanted.replace('-', ' '),
        choices,
        scorer=fuzz.token_sort_ratio
    )
    if match_result is None:
        logger.warning(f"No fuzzy match found for: {name}")
        return None

    _, score, key = match_result
    if score < threshold:
        logger.warning(f"Low confidence match for '{name}' → '{key}' ({score}%)")
        return None

    rider = by_name[key]
    logger.debug(f"Matched: '{name}' → '{rider.name}' (ID: {rider.rider_id}, {score}%)")
    return rider.rider_id


def build_sold_index(records: Iterable[SoldRider], riders: Iterable[Rider]) -> Dict[str, SoldRider]:
    """
    Build the rider id → ownership record index.

    Records without a rider id are resolved by name; records that cannot be
    resolved are skipped.
    """
    riders: List[Rider] = list(riders)
    index: Dict[str, SoldRider] = {}
    unresolved = 0

    for record in records:
        rider_id = record.rider_name_id or match_rider_id(record.rider_name, riders)
        if not rider_id:
            unresolved += 1
            continue
        index.setdefault(rider_id, record)

    if unresolved:
        logger.warning(f"Skipped {unresolved} ownership record(s) with unknown riders")
    return index
