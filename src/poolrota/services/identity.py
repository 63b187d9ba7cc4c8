"""Guard identity resolution: legacy prefixes and display-name references."""
import unicodedata
from typing import Dict, Iterable, Optional, Set

from poolrota.models.personnel import GUARD_PREFIX, Guard


def strip_prefix(value) -> str:
    """Drop the legacy ``GUARD#`` prefix from a stored reference."""
    text = "" if value is None else str(value)
    return text[len(GUARD_PREFIX):] if text.startswith(GUARD_PREFIX) else text


def normalize_name(name) -> str:
    """NFD decompose, drop combining marks, casefold and trim."""
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFD", str(name))
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return folded.casefold().strip()


def build_name_index(guards: Iterable[Guard]) -> Dict[str, str]:
    """Normalized name -> guard id. First guard wins on a name collision."""
    index: Dict[str, str] = {}
    for g in guards:
        key = normalize_name(g.name)
        if key and key not in index:
            index[key] = g.id
    return index


def canonicalize(reference, known_ids: Set[str], name_index: Dict[str, str]) -> Optional[str]:
    """
    Resolve a stored reference to a roster id.

    Known ids (after prefix stripping) come back unchanged; anything else is
    tried as a display name. Returns None when nothing matches.
    """
    ref = strip_prefix(reference).strip()
    if not ref:
        return None
    if ref in known_ids:
        return ref
    return name_index.get(normalize_name(ref))
