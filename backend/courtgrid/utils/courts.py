"""
Canonical parser for court names and court catalog construction.

Handles both string ("1,5,6") and list (["1","5","6"]) inputs so we never
silently corrupt labels (e.g. list("1,5,6") -> ['1', ',', '5', ...]).
"""
from typing import Iterable, List, Optional, Union

from courtgrid.models.block import CourtMeta, CourtRef


def parse_court_names(court_names: Optional[Union[str, List[str]]]) -> List[str]:
    """
    Normalize court_names to a list of non-empty strings.

    - None or "" -> []
    - String (e.g. "1,5,6") -> split on commas, strip whitespace, drop empties -> ["1","5","6"]
    - List (e.g. ["1","5","6"]) -> coerce each to str(x).strip(), drop empties
    """
    if court_names is None:
        return []
    if isinstance(court_names, str):
        s = court_names.strip()
        if not s:
            return []
        return [x.strip() for x in s.split(",") if x.strip()]
    if isinstance(court_names, list):
        return [str(x).strip() for x in court_names if str(x).strip()]
    return []


def build_court_catalog(
    facility_id: str,
    court_names: Optional[Union[str, List[str]]],
    indoor: bool = False,
    has_lights: bool = False,
) -> List[CourtMeta]:
    """
    Build one CourtMeta per parsed court label, all in one facility.

    The label doubles as court_id and display name.
    """
    return [
        CourtMeta(
            ref=CourtRef(facility_id=facility_id, court_id=label),
            name=label,
            indoor=indoor,
            has_lights=has_lights,
        )
        for label in parse_court_names(court_names)
    ]


def normalize_catalog(courts: Iterable[Union[CourtRef, CourtMeta]]) -> List[CourtMeta]:
    """Wrap bare CourtRefs into CourtMeta so the engine only deals with one shape."""
    catalog: List[CourtMeta] = []
    for court in courts:
        if isinstance(court, CourtMeta):
            catalog.append(court)
        elif isinstance(court, CourtRef):
            catalog.append(CourtMeta(ref=court, name=court.court_id))
        else:
            raise TypeError(f"Court catalog entries must be CourtRef or CourtMeta, got {type(court).__name__}")
    return catalog
