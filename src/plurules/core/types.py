"""Domain types for the plurules zoning ruleset engine.

All shared dataclasses and type definitions live here to prevent
circular imports and establish a single source of truth for the
domain model. Every other module imports from here.

Field names on the output side follow the ``plu_ruleset_v1`` wire
contract (French keys) so that ``dataclasses.asdict()`` produces the
exact shape consumed by the site-layout and massing tools.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

RULESET_VERSION = "plu_ruleset_v1"

RuleType = Literal["FIXED", "DERIVED", "UNKNOWN"]

# Blocking fields, in reporting order
CORE_SETBACK_FIELDS = (
    "reculs.voirie.min_m",
    "reculs.limites_separatives.min_m",
    "reculs.fond_parcelle.min_m",
)


# ---------------------------------------------------------------------------
# Resolved ruleset (canonical output)
# ---------------------------------------------------------------------------

@dataclass
class SetbackRule:
    """One of the three core setbacks, in metres."""

    value: float | None = None
    type: RuleType = "UNKNOWN"
    note: str | None = None


@dataclass
class FacadeRule:
    """A facade-level setback, either explicit or derived from a core setback."""

    value: float | None = None
    type: RuleType = "UNKNOWN"
    note: str | None = None
    derived: bool = False


@dataclass
class BoundaryAdjacency:
    """Whether building directly on a property line is permitted."""

    autorisee: bool | None = None
    note: str | None = None


@dataclass
class Facades:
    avant: FacadeRule = field(default_factory=FacadeRule)
    laterales: FacadeRule = field(default_factory=FacadeRule)
    fond: FacadeRule = field(default_factory=FacadeRule)


@dataclass
class Setbacks:
    voirie: SetbackRule = field(default_factory=SetbackRule)
    limites_separatives: SetbackRule = field(default_factory=SetbackRule)
    fond_parcelle: SetbackRule = field(default_factory=SetbackRule)
    implantation_en_limite: BoundaryAdjacency = field(default_factory=BoundaryAdjacency)
    facades: Facades = field(default_factory=Facades)


@dataclass
class FootprintRule:
    """Maximum footprint ratio (CES), always normalized to [0, 1]."""

    max_ratio: float | None = None
    note: str | None = None


@dataclass
class HeightRule:
    max_m: float | None = None
    note: str | None = None


@dataclass
class ParkingRule:
    """Parking ratios. Either one being known satisfies "parking known"."""

    par_logement: float | None = None
    par_100m2: float | None = None
    note: str | None = None


@dataclass
class Completeness:
    """Completeness verdict.

    ``ok`` only depends on the blocking fields listed in ``missing``;
    ``optional_missing`` is informative.
    """

    ok: bool = False
    missing: list[str] = field(default_factory=lambda: list(CORE_SETBACK_FIELDS))
    optional_missing: list[str] = field(default_factory=list)


@dataclass
class ResolvedRuleset:
    """Canonical, audit-traceable zoning ruleset for one (document, zone).

    Never mutated in place by the engine: every step returns a new value.
    """

    document_id: str
    commune_insee: str
    zone_code: str
    version: str = RULESET_VERSION
    zone_libelle: str | None = None
    confidence_score: float | None = None
    source: str | None = None

    reculs: Setbacks = field(default_factory=Setbacks)
    ces: FootprintRule = field(default_factory=FootprintRule)
    hauteur: HeightRule = field(default_factory=HeightRule)
    stationnement: ParkingRule = field(default_factory=ParkingRule)

    notes: list[str] = field(default_factory=list)
    completeness: Completeness = field(default_factory=Completeness)


# ---------------------------------------------------------------------------
# Typed intermediate representation (one per raw source, before resolution)
# ---------------------------------------------------------------------------

@dataclass
class ValueWithNote:
    """A coerced scalar plus the note its source attached to it."""

    value: float | None = None
    note: str | None = None


@dataclass
class PartialRuleset:
    """What a source adapter could read from its raw record.

    Values are already coerced but not yet normalized or derived:
    ``ces_raw`` may still be a percentage and facades may be missing.
    ``derive_all_facades`` forces derivation even when a facade value is
    present (the canonical summary never stores facades independently).
    """

    voirie: ValueWithNote = field(default_factory=ValueWithNote)
    limites_separatives: ValueWithNote = field(default_factory=ValueWithNote)
    fond_parcelle: ValueWithNote = field(default_factory=ValueWithNote)

    implantation_en_limite: bool | None = None
    implantation_en_limite_note: str | None = None

    facade_avant: ValueWithNote = field(default_factory=ValueWithNote)
    facade_laterales: ValueWithNote = field(default_factory=ValueWithNote)
    facade_fond: ValueWithNote = field(default_factory=ValueWithNote)
    derive_all_facades: bool = False

    ces_raw: float | None = None
    ces_note: str | None = None

    hauteur_max_m: float | None = None
    hauteur_note: str | None = None

    par_logement: float | None = None
    par_100m2: float | None = None
    stationnement_note: str | None = None

    notes: list[str] = field(default_factory=list)
    zone_libelle: str | None = None
    confidence_score: float | None = None
    source: str | None = None

    # Wording used for "not found" notes, e.g. "in the ruleset"
    missing_label: str = "in the ruleset"


# ---------------------------------------------------------------------------
# Persisted caller-side entities
# ---------------------------------------------------------------------------

@dataclass
class UserOverrideValues:
    """Sparse user corrections for one (document, zone).

    ``None`` means "not present": only non-None fields are applied.
    Values are kept as given and coerced when applied, so that a
    malformed correction degrades to "not applied" instead of failing.
    """

    voirie_min_m: Any = None
    limites_separatives_min_m: Any = None
    fond_parcelle_min_m: Any = None
    implantation_en_limite_autorisee: Any = None
    ces_max_ratio: Any = None
    hauteur_max_m: Any = None
    stationnement_par_logement: Any = None
    stationnement_par_100m2: Any = None
    notes_append: Any = None

    @classmethod
    def from_dict(cls, raw: dict | None) -> "UserOverrideValues":
        """Build from the wire shape ``{reculs: {...}, ces_max_ratio, ...}``."""
        if not isinstance(raw, dict):
            return cls()
        reculs = raw.get("reculs")
        if not isinstance(reculs, dict):
            reculs = {}
        return cls(
            voirie_min_m=reculs.get("voirie_min_m"),
            limites_separatives_min_m=reculs.get("limites_separatives_min_m"),
            fond_parcelle_min_m=reculs.get("fond_parcelle_min_m"),
            implantation_en_limite_autorisee=reculs.get("implantation_en_limite_autorisee"),
            ces_max_ratio=raw.get("ces_max_ratio"),
            hauteur_max_m=raw.get("hauteur_max_m"),
            stationnement_par_logement=raw.get("stationnement_par_logement"),
            stationnement_par_100m2=raw.get("stationnement_par_100m2"),
            notes_append=raw.get("notes_append"),
        )

    def to_dict(self) -> dict:
        """Serialize back to the sparse wire shape, omitting absent fields."""
        reculs = {
            key: getattr(self, key)
            for key in (
                "voirie_min_m",
                "limites_separatives_min_m",
                "fond_parcelle_min_m",
                "implantation_en_limite_autorisee",
            )
            if getattr(self, key) is not None
        }
        result: dict[str, Any] = {"reculs": reculs}
        for key in (
            "ces_max_ratio",
            "hauteur_max_m",
            "stationnement_par_logement",
            "stationnement_par_100m2",
            "notes_append",
        ):
            if getattr(self, key) is not None:
                result[key] = getattr(self, key)
        return result


@dataclass
class UserOverrideEntry:
    """A saved set of user corrections with its save timestamp (ISO 8601)."""

    updated_at: str
    overrides: UserOverrideValues = field(default_factory=UserOverrideValues)


@dataclass
class PersistedExtraction:
    """An automated-extraction result pinned to the (document, zone) it was run for."""

    document_id: str
    zone_code: str
    commune_insee: str
    extracted_at: str
    data: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Arbitration
# ---------------------------------------------------------------------------

class OverrideLookup(Protocol):
    """Anything keyed by ``override_key`` that can hand back an entry."""

    def get(self, key: str) -> UserOverrideEntry | None: ...


ResolutionOrigin = Literal["canonical", "active", "merged", "extraction", "structured", "empty"]


@dataclass
class ResolutionInputs:
    """Everything currently available for the selected (document, zone).

    Sources that are still loading or failed upstream are simply absent.
    """

    document_id: str
    commune_insee: str
    zone_code: str
    structured_records: list[dict] = field(default_factory=list)
    extraction: PersistedExtraction | None = None
    canonical_summary: dict | None = None
    active_ruleset: ResolvedRuleset | None = None
    overrides: OverrideLookup | None = None


@dataclass
class ResolutionOutcome:
    """The authoritative ruleset and which branch of the priority order produced it."""

    origin: ResolutionOrigin
    ruleset: ResolvedRuleset
    overridden: bool = False
