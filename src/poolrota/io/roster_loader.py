"""Roster loading: personnel directory from CSV or DataFrame."""
from pathlib import Path
from typing import Iterable, List, Protocol, Union

import pandas as pd

from poolrota.models.personnel import Guard
from poolrota.utils.logging_setup import get_logger

logger = get_logger("poolrota.io.roster_loader")


class PersonnelDirectory(Protocol):
    """Anything that can list the active roster."""

    def list_active(self) -> List[Guard]:
        ...


class StaticDirectory:
    """In-memory directory over a fixed list of guards."""

    def __init__(self, guards: Iterable[Guard] = ()):
        self._guards = list(guards)

    def list_active(self) -> List[Guard]:
        return list(self._guards)

    def __len__(self) -> int:
        return len(self._guards)


def _clean(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value).strip()


def load_roster(source: Union[str, Path, pd.DataFrame]) -> List[Guard]:
    """
    Load guards from a CSV file or DataFrame.

    Args:
        source: Path to CSV file or pandas DataFrame with an ``id`` (or
            ``pk``) column and optional ``name`` and ``dob`` columns

    Returns:
        List of Guard objects; rows without an id are skipped
    """
    if isinstance(source, pd.DataFrame):
        df = source.copy()
    else:
        df = pd.read_csv(source, dtype=str)

    df = df.fillna("")
    df.columns = [str(c).strip().lower() for c in df.columns]

    id_col = "id" if "id" in df.columns else "pk" if "pk" in df.columns else None
    if id_col is None:
        raise ValueError("Roster must have an 'id' column")

    guards = []
    seen = set()
    for _, row in df.iterrows():
        guard = Guard(
            id=_clean(row[id_col]),
            name=_clean(row.get("name", "")),
            dob=_clean(row.get("dob", "")) or None,
        )
        if not guard.id:
            continue
        if guard.id in seen:
            logger.warning(f"Duplicate roster id {guard.id}, keeping first")
            continue
        seen.add(guard.id)
        guards.append(guard)

    logger.info(f"Loaded {len(guards)} guards")
    return guards


def load_directory(source: Union[str, Path, pd.DataFrame]) -> StaticDirectory:
    return StaticDirectory(load_roster(source))


def roster_to_dataframe(guards: List[Guard]) -> pd.DataFrame:
    """Convert roster to DataFrame for display."""
    if not guards:
        return pd.DataFrame(columns=["id", "name", "dob"])
    return pd.DataFrame([g.to_dict() for g in guards])
