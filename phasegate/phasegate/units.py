"""
PhaseGate Code Units and Corpus

A CodeUnit is a named region of source (function or branch) extracted by an
external ingestion collaborator. Units are immutable once extracted and are
consumed read-only by the classifier, generator and gate.

The Corpus is the ordered set of units under review. Declaration order is the
order units were supplied in, and is the tie-breaker for hypothesis ordering.
"""

import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple


class Ecosystem(str, Enum):
    """Supported smart-contract ecosystems."""
    SOLIDITY = "solidity"       # Solidity / EVM
    COSMWASM = "cosmwasm"       # Rust / CosmWasm
    COSMOS_SDK = "cosmos_sdk"   # Go / Cosmos SDK
    CAIRO = "cairo"             # Cairo / StarkNet
    PYTEAL = "pyteal"           # Algorand / PyTeal


class EntryKind(str, Enum):
    """Declared visibility or entry-point kind of a unit."""
    PUBLIC = "public"
    EXTERNAL = "external"
    ENTRY_POINT = "entry_point"
    INTERNAL = "internal"
    PRIVATE = "private"
    VIEW = "view"


ENTRY_KINDS = frozenset({EntryKind.PUBLIC, EntryKind.EXTERNAL, EntryKind.ENTRY_POINT})

UNIT_ID_PATTERN = re.compile(r'^\S+$')


def _default_name(unit_id: str) -> str:
    tail = unit_id.split("::")[-1]
    return tail.split(".")[-1]


@dataclass(frozen=True)
class CodeUnit:
    """
    A named region of contract source.

    Required fields:
    - unit_id: Unique identifier within the corpus (e.g. "x/bank/keeper.go::SendCoins")
    - ecosystem: Ecosystem tag selecting the lexicon
    - text: Raw source text
    - kind: Declared visibility / entry-point kind

    Optional fields:
    - name: Callable name used for call resolution (derived from unit_id)
    - source_path, start_line: Source-location citation required for findings
    - calls: Ids of units this unit is known to call
    """
    unit_id: str
    ecosystem: Ecosystem
    text: str
    kind: EntryKind = EntryKind.INTERNAL
    name: str = ""
    source_path: Optional[str] = None
    start_line: Optional[int] = None
    calls: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        """Validate unit fields and normalize enum-typed values."""
        if not self.unit_id or not UNIT_ID_PATTERN.match(self.unit_id):
            raise ValueError(f"Invalid unit_id '{self.unit_id}': must be non-empty without whitespace")

        try:
            object.__setattr__(self, "ecosystem", Ecosystem(self.ecosystem))
        except ValueError:
            raise ValueError(
                f"Invalid ecosystem '{self.ecosystem}': "
                f"must be one of {[e.value for e in Ecosystem]}"
            )

        try:
            object.__setattr__(self, "kind", EntryKind(self.kind))
        except ValueError:
            raise ValueError(
                f"Invalid kind '{self.kind}': must be one of {[k.value for k in EntryKind]}"
            )

        if not isinstance(self.text, str) or not self.text.strip():
            raise ValueError(f"Unit {self.unit_id} has empty text")

        if not self.name:
            object.__setattr__(self, "name", _default_name(self.unit_id))

        if self.start_line is not None and (
            isinstance(self.start_line, bool) or not isinstance(self.start_line, int) or self.start_line < 1
        ):
            raise ValueError(f"Unit {self.unit_id} has invalid start_line {self.start_line}")

        object.__setattr__(self, "calls", tuple(self.calls))

    def is_entry_point(self) -> bool:
        return self.kind in ENTRY_KINDS

    def location(self) -> Optional[str]:
        """Source-location citation as "path:line", or None when untraceable."""
        if not self.source_path:
            return None
        if self.start_line is None:
            return self.source_path
        return f"{self.source_path}:{self.start_line}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d = {
            "unit_id": self.unit_id,
            "ecosystem": self.ecosystem.value,
            "text": self.text,
            "kind": self.kind.value,
            "name": self.name,
        }
        if self.source_path:
            d["source_path"] = self.source_path
        if self.start_line is not None:
            d["start_line"] = self.start_line
        if self.calls:
            d["calls"] = list(self.calls)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CodeUnit':
        """Create a CodeUnit from dictionary."""
        required = ["unit_id", "ecosystem", "text"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        return cls(
            unit_id=data["unit_id"],
            ecosystem=data["ecosystem"],
            text=data["text"],
            kind=data.get("kind", EntryKind.INTERNAL.value),
            name=data.get("name", ""),
            source_path=data.get("source_path"),
            start_line=data.get("start_line"),
            calls=tuple(data.get("calls", ())),
        )


def create_unit(
    unit_id: str,
    ecosystem: str,
    text: str,
    kind: str = "internal",
    source_path: Optional[str] = None,
    start_line: Optional[int] = None,
    calls: Iterable[str] = (),
    name: str = "",
) -> CodeUnit:
    """
    Factory function to create a CodeUnit.

    Args:
        unit_id: Unique identifier within the corpus
        ecosystem: Ecosystem tag (e.g. "cosmos_sdk")
        text: Raw source of the function or branch
        kind: Declared visibility (default: internal)
        source_path: File the unit was extracted from
        start_line: First line of the unit in source_path
        calls: Ids of units this unit calls, if known
        name: Callable name (derived from unit_id when omitted)
    """
    return CodeUnit(
        unit_id=unit_id,
        ecosystem=ecosystem,
        text=text,
        kind=kind,
        name=name,
        source_path=source_path,
        start_line=start_line,
        calls=tuple(calls),
    )


class Corpus:
    """
    Ordered collection of code units under review.

    Besides the units, the corpus carries:
    - entry_points: unit ids registered as entry points by the ingestion
      collaborator (message handlers, dispatch targets)
    - complete: attestation that every unit of the codebase is included;
      only then can the absence of an entry path prove dead code
    """

    def __init__(
        self,
        units: Iterable[CodeUnit],
        entry_points: Iterable[str] = (),
        complete: bool = False,
    ):
        self._units: List[CodeUnit] = list(units)
        self._by_id: Dict[str, CodeUnit] = {}
        self._index: Dict[str, int] = {}
        for position, unit in enumerate(self._units):
            if unit.unit_id in self._by_id:
                raise ValueError(f"Duplicate unit id: {unit.unit_id}")
            self._by_id[unit.unit_id] = unit
            self._index[unit.unit_id] = position

        self.entry_points: FrozenSet[str] = frozenset(entry_points)
        unknown = sorted(self.entry_points - set(self._by_id))
        if unknown:
            raise ValueError(f"Entry points not in corpus: {unknown}")

        if not isinstance(complete, bool):
            raise ValueError(f"complete must be a boolean, got {complete!r}")
        self.complete = complete
        self._calls: Optional[Dict[str, Tuple[str, ...]]] = None
        self._callers: Optional[Dict[str, Tuple[str, ...]]] = None

    def __iter__(self) -> Iterator[CodeUnit]:
        return iter(self._units)

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._by_id

    @property
    def units(self) -> Tuple[CodeUnit, ...]:
        return tuple(self._units)

    def get(self, unit_id: str) -> Optional[CodeUnit]:
        return self._by_id.get(unit_id)

    def index_of(self, unit_id: str) -> int:
        """Declaration position of a unit; units outside the corpus sort last."""
        return self._index.get(unit_id, len(self._units))

    def by_name(self, name: str) -> List[CodeUnit]:
        return [u for u in self._units if u.name == name]

    def is_entry_point(self, unit: CodeUnit) -> bool:
        return unit.is_entry_point() or unit.unit_id in self.entry_points

    def calls_of(self, unit_id: str) -> Tuple[str, ...]:
        """Units called by unit_id: explicit calls plus lexical call sites."""
        self._build_call_graph()
        return self._calls.get(unit_id, ())

    def callers_of(self, unit_id: str) -> Tuple[str, ...]:
        self._build_call_graph()
        return self._callers.get(unit_id, ())

    def entry_path(self, unit_id: str) -> Optional[List[str]]:
        """
        Shortest call path from an entry point to unit_id.

        Returns:
            List of unit ids starting at an entry point and ending at unit_id,
            or None when no entry point reaches the unit.
        """
        unit = self.get(unit_id)
        if unit is None:
            return None
        if self.is_entry_point(unit):
            return [unit_id]

        # Breadth-first over callers; predecessor map rebuilds the path.
        successor: Dict[str, str] = {unit_id: ""}
        queue = deque([unit_id])
        while queue:
            current = queue.popleft()
            for caller_id in self.callers_of(current):
                if caller_id in successor:
                    continue
                successor[caller_id] = current
                if self.is_entry_point(self._by_id[caller_id]):
                    path = [caller_id]
                    while path[-1] != unit_id:
                        path.append(successor[path[-1]])
                    return path
                queue.append(caller_id)
        return None

    def reachable_units(self, unit_id: str) -> List[str]:
        """unit_id followed by every unit transitively called from it."""
        if unit_id not in self._by_id:
            return []
        seen = [unit_id]
        queue = deque([unit_id])
        while queue:
            for callee in self.calls_of(queue.popleft()):
                if callee not in seen:
                    seen.append(callee)
                    queue.append(callee)
        return seen

    def _build_call_graph(self) -> None:
        if self._calls is not None:
            return

        name_patterns = {
            name: re.compile(r'\b' + re.escape(name) + r'\s*\(')
            for name in {u.name for u in self._units}
        }

        calls: Dict[str, List[str]] = {}
        for unit in self._units:
            targets: List[str] = [c for c in unit.calls if c in self._by_id and c != unit.unit_id]
            for other in self._units:
                if other.unit_id == unit.unit_id or other.unit_id in targets:
                    continue
                if name_patterns[other.name].search(unit.text):
                    targets.append(other.unit_id)
            targets.sort(key=self.index_of)
            calls[unit.unit_id] = targets

        callers: Dict[str, List[str]] = {u.unit_id: [] for u in self._units}
        for caller_id, targets in calls.items():
            for target in targets:
                callers[target].append(caller_id)
        for target in callers:
            callers[target].sort(key=self.index_of)

        self._calls = {k: tuple(v) for k, v in calls.items()}
        self._callers = {k: tuple(v) for k, v in callers.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "units": [u.to_dict() for u in self._units],
            "entry_points": sorted(self.entry_points),
            "complete": self.complete,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Corpus':
        """Create a Corpus from its JSON form."""
        if "units" not in data:
            raise ValueError("Missing required field: units")
        return cls(
            units=[CodeUnit.from_dict(u) for u in data["units"]],
            entry_points=data.get("entry_points", ()),
            complete=data.get("complete", False),
        )
