"""Domain models for parsed food queries."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class UnitCount:
    """Quantity and serving unit parsed from a query, e.g. 2 x slice."""

    count: float
    unit: str


@dataclass(frozen=True)
class ParsedFacets:
    """Structured attributes extracted from free-text food queries."""

    core: frozenset[str] = field(default_factory=frozenset)
    prep: frozenset[str] = field(default_factory=frozenset)
    cuisine: frozenset[str] = field(default_factory=frozenset)
    form: frozenset[str] = field(default_factory=frozenset)
    protein: frozenset[str] = field(default_factory=frozenset)
    size: frozenset[str] = field(default_factory=frozenset)
    quantity: frozenset[str] = field(default_factory=frozenset)
    units: UnitCount | None = None

    def is_empty(self) -> bool:
        """Return True when no facet category matched."""
        return self.units is None and not any(
            (
                self.core,
                self.prep,
                self.cuisine,
                self.form,
                self.protein,
                self.size,
                self.quantity,
            )
        )
