"""
Pool Topology
=============
Static graph of seats: positions, their directed "next" edges (one ring or
chain per section) and the rest seats that stay staffed during adult swim.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set


def section_from_id(position_id: str) -> str:
    """Section prefix of a ``<section>.<index>`` position id."""
    return str(position_id).split(".", 1)[0]


def _seat_index(position_id: str) -> int:
    try:
        return int(str(position_id).split(".", 1)[1])
    except (IndexError, ValueError):
        return 0


def _section_sort_key(section: str):
    # Numeric sections first in numeric order, then anything else alphabetically
    return (0, int(section), "") if section.isdigit() else (1, 0, section)


@dataclass(frozen=True)
class Position:
    """A single seat / station."""
    id: str
    label: str = ""
    is_rest_position: bool = False
    min_age: int = 0  # 0 = no age requirement

    @property
    def section(self) -> str:
        return section_from_id(self.id)

    @property
    def index(self) -> int:
        return _seat_index(self.id)


@dataclass(frozen=True)
class Edge:
    """Directed ``from -> to`` pointer used to propagate occupants."""
    source: str
    target: str


@dataclass
class Topology:
    """
    Lookup surface over positions and edges.

    Every non-terminal position has exactly one outgoing edge; a position
    without one is a ring terminus. All lookups are pure.
    """

    positions: List[Position]
    edges: List[Edge] = field(default_factory=list)

    def __post_init__(self):
        self._by_id: Dict[str, Position] = {}
        for p in self.positions:
            if p.id in self._by_id:
                raise ValueError(f"Duplicate position id: {p.id}")
            self._by_id[p.id] = p

        self._next: Dict[str, str] = {}
        for e in self.edges:
            if e.source not in self._by_id or e.target not in self._by_id:
                raise ValueError(f"Edge references unknown position: {e.source} -> {e.target}")
            if e.source in self._next:
                raise ValueError(f"Position {e.source} has more than one outgoing edge")
            self._next[e.source] = e.target

        self._sections: List[str] = sorted(
            {p.section for p in self.positions}, key=_section_sort_key
        )
        self._seats_by_section: Dict[str, List[str]] = {s: [] for s in self._sections}
        for p in sorted(self.positions, key=lambda p: (_section_sort_key(p.section), p.index)):
            self._seats_by_section[p.section].append(p.id)

    @classmethod
    def from_layout(
        cls,
        positions: Iterable[Dict],
        edges: Iterable[Dict],
        rest_positions: Iterable[str] = (),
        min_ages: Optional[Dict[str, int]] = None,
    ) -> "Topology":
        """Build from plain layout dicts (``{"id", "label"}`` / ``{"from", "to"}``)."""
        rest = set(rest_positions)
        min_ages = min_ages or {}
        return cls(
            positions=[
                Position(
                    id=str(p["id"]),
                    label=str(p.get("label", p["id"])),
                    is_rest_position=str(p["id"]) in rest,
                    min_age=int(min_ages.get(str(p["id"]), 0)),
                )
                for p in positions
            ],
            edges=[Edge(str(e["from"]), str(e["to"])) for e in edges],
        )

    # ---- lookups ----

    def next_position(self, position_id: str) -> Optional[str]:
        return self._next.get(position_id)

    def section_of(self, position_id: str) -> str:
        return section_from_id(position_id)

    def is_rest_position(self, position_id: str) -> bool:
        p = self._by_id.get(position_id)
        return bool(p and p.is_rest_position)

    def all_positions(self) -> List[str]:
        """Position ids ordered by section, then seat index."""
        return [pid for s in self._sections for pid in self._seats_by_section[s]]

    def all_sections(self) -> List[str]:
        return list(self._sections)

    # ---- helpers ----

    def __contains__(self, position_id: str) -> bool:
        return position_id in self._by_id

    def get(self, position_id: str) -> Optional[Position]:
        return self._by_id.get(position_id)

    def positions_in(self, section: str) -> List[str]:
        return list(self._seats_by_section.get(section, []))

    def entry_position(self, section: str) -> Optional[str]:
        seats = self._seats_by_section.get(section)
        return seats[0] if seats else None

    def terminal_positions(self) -> Set[str]:
        return {pid for pid in self._by_id if pid not in self._next}

    def is_terminal(self, position_id: str) -> bool:
        return position_id in self._by_id and position_id not in self._next

    def next_section(self, section: str) -> str:
        """Section that receives occupants leaving ``section``'s terminus (cyclic)."""
        if section not in self._sections:
            return section
        i = self._sections.index(section)
        return self._sections[(i + 1) % len(self._sections)]

    def min_age(self, position_id: str) -> int:
        p = self._by_id.get(position_id)
        return p.min_age if p else 0

    def empty_assignment(self) -> Dict[str, Optional[str]]:
        return {pid: None for pid in self.all_positions()}


# Default pool layout: four sections, each a three- or two-seat chain.
DEFAULT_POSITIONS = [
    {"id": "1.1", "label": "1.1"},
    {"id": "1.2", "label": "1.2"},
    {"id": "1.3", "label": "1.3"},
    {"id": "2.1", "label": "2.1"},
    {"id": "2.2", "label": "2.2"},
    {"id": "2.3", "label": "2.3"},
    {"id": "3.1", "label": "3.1"},
    {"id": "3.2", "label": "3.2"},
    {"id": "3.3", "label": "3.3"},
    {"id": "4.1", "label": "MainPoolSlide"},
    {"id": "4.2", "label": "MainPoolSlide.2"},
]

DEFAULT_EDGES = [
    {"from": "1.1", "to": "1.2"},
    {"from": "1.2", "to": "1.3"},
    {"from": "2.1", "to": "2.2"},
    {"from": "2.2", "to": "2.3"},
    {"from": "3.1", "to": "3.2"},
    {"from": "3.2", "to": "3.3"},
    {"from": "4.1", "to": "4.2"},
]

DEFAULT_REST_POSITIONS = {"1.2", "2.2", "3.1"}

# Slide seats need an adult guard
DEFAULT_MIN_AGES = {"4.1": 18, "4.2": 18}

DEFAULT_TOPOLOGY = Topology.from_layout(
    DEFAULT_POSITIONS, DEFAULT_EDGES, DEFAULT_REST_POSITIONS, DEFAULT_MIN_AGES
)
