"""Source adapters: raw records in, ``PartialRuleset`` out.

Each of the three sources (structured store row, automated extraction
result, canonical summary row) is parsed exactly once into the same typed
intermediate representation. Fallback chains are declared as data: a
``FieldChain`` is an ordered tuple of paths into the raw record, most
trusted first.

No normalization or derivation happens here; that is the job of the
shared pipeline in ``plurules.pipeline.resolver``.
"""

import logging
from collections.abc import Mapping
from typing import Any

from plurules.core.types import PartialRuleset, ValueWithNote
from plurules.pipeline.coerce import (
    get_path,
    pick_first_number,
    safe_boolean,
    safe_string,
    to_number,
    unique_strings,
    zones_match,
)

logger = logging.getLogger(__name__)

FieldChain = tuple[tuple[str, ...], ...]


def first_number(record: Any, chain: FieldChain) -> float | None:
    """Walk a fallback chain and return the first numeric value found."""
    return pick_first_number(*(get_path(record, *path) for path in chain))


def first_string(record: Any, chain: FieldChain) -> str | None:
    for path in chain:
        s = safe_string(get_path(record, *path))
        if s is not None:
            return s
    return None


def first_boolean(record: Any, chain: FieldChain) -> bool | None:
    for path in chain:
        b = safe_boolean(get_path(record, *path))
        if b is not None:
            return b
    return None


def _string_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


# ---------------------------------------------------------------------------
# Structured-record source (zone row from the rules store)
# ---------------------------------------------------------------------------

STRUCTURED_SETBACK_CHAINS: dict[str, FieldChain] = {
    "voirie": (
        ("retrait_voirie_min_m",),
        ("rules", "implantation", "recul_voirie_min_m"),
        ("rules", "reculs", "voirie", "min_m"),
        ("ruleset", "reculs", "voirie", "min_m"),
    ),
    "limites_separatives": (
        ("retrait_limites_separatives_min_m",),
        ("rules", "implantation", "recul_limite_separative_min_m"),
        ("rules", "reculs", "limites_separatives", "min_m"),
        ("ruleset", "reculs", "limites_separatives", "min_m"),
    ),
    "fond_parcelle": (
        ("retrait_fond_parcelle_min_m",),
        ("rules", "implantation", "recul_fond_parcelle_min_m"),
        ("rules", "reculs", "fond_parcelle", "min_m"),
        ("ruleset", "reculs", "fond_parcelle", "min_m"),
    ),
}

STRUCTURED_BOUNDARY_CHAIN: FieldChain = (
    ("rules", "implantation", "implantation_en_limite_autorisee"),
    ("ruleset", "reculs", "implantation_en_limite", "autorisee"),
)

STRUCTURED_HEIGHT_CHAIN: FieldChain = (
    ("rules", "hauteur", "hauteur_max_m"),
    ("ruleset", "hauteur", "max_m"),
    ("ruleset", "hauteur", "hauteur_max_m"),
)

STRUCTURED_CES_CHAIN: FieldChain = (
    ("rules", "emprise", "ces_max_percent"),
    ("ruleset", "emprise", "ces_max_percent"),
)

STRUCTURED_PARKING_CHAINS: dict[str, FieldChain] = {
    "par_logement": (
        ("places_par_logement",),
        ("rules", "stationnement", "places_par_logement"),
        ("ruleset", "stationnement", "places_par_logement"),
        ("ruleset", "stationnement", "par_logement"),
    ),
    "par_100m2": (
        ("places_par_100m2",),
        ("rules", "stationnement", "places_par_100m2"),
        ("ruleset", "stationnement", "places_par_100m2"),
        ("ruleset", "stationnement", "par_100m2"),
    ),
}


def structured_facade_chain(facade: str) -> FieldChain:
    """Explicit facade locations, most trusted first. Derivation is not a source."""
    bases = (
        ("rules", "implantation", "facades", facade),
        ("ruleset", "rules", "implantation", "facades", facade),
        ("ruleset", "implantation", "facades", facade),
    )
    return tuple(base + (leaf,) for base in bases for leaf in ("recul_min_m", "min_m"))


def _structured_facade(record: Mapping, facade: str) -> ValueWithNote:
    for path in structured_facade_chain(facade):
        value = to_number(get_path(record, *path))
        if value is not None:
            # The note sits next to whichever value won
            return ValueWithNote(value, safe_string(get_path(record, *path[:-1], "note")))
    return ValueWithNote()


def parse_structured_record(record: Mapping) -> PartialRuleset:
    """Read a structured-store zone row into a ``PartialRuleset``."""
    setbacks = {}
    for key, chain in STRUCTURED_SETBACK_CHAINS.items():
        note = first_string(record, (
            ("rules", "reculs", key, "note"),
            ("ruleset", "reculs", key, "note"),
        ))
        setbacks[key] = ValueWithNote(first_number(record, chain), note)

    notes = unique_strings([
        *_string_list(get_path(record, "rules", "meta", "notes")),
        *(get_path(record, "rules", "reculs", key, "note") for key in STRUCTURED_SETBACK_CHAINS),
        *(get_path(record, "ruleset", "reculs", key, "note") for key in STRUCTURED_SETBACK_CHAINS),
    ])

    return PartialRuleset(
        voirie=setbacks["voirie"],
        limites_separatives=setbacks["limites_separatives"],
        fond_parcelle=setbacks["fond_parcelle"],
        implantation_en_limite=first_boolean(record, STRUCTURED_BOUNDARY_CHAIN),
        implantation_en_limite_note=safe_string(
            get_path(record, "ruleset", "reculs", "implantation_en_limite", "note")
        ),
        facade_avant=_structured_facade(record, "avant"),
        facade_laterales=_structured_facade(record, "laterales"),
        facade_fond=_structured_facade(record, "fond"),
        ces_raw=first_number(record, STRUCTURED_CES_CHAIN),
        hauteur_max_m=first_number(record, STRUCTURED_HEIGHT_CHAIN),
        par_logement=first_number(record, STRUCTURED_PARKING_CHAINS["par_logement"]),
        par_100m2=first_number(record, STRUCTURED_PARKING_CHAINS["par_100m2"]),
        notes=notes,
        zone_libelle=first_string(record, (("zone_libelle",), ("rules", "zone_libelle"))),
        confidence_score=to_number(record.get("confidence_score")),
        source=safe_string(record.get("source")),
        missing_label="in the ruleset",
    )


# ---------------------------------------------------------------------------
# Automated-extraction source (rich {value, unit, ...} or flat legacy shape)
# ---------------------------------------------------------------------------

# (rich path, legacy path), rich wins when it carries a value
EXTRACTION_SETBACK_CHAINS: dict[str, FieldChain] = {
    "voirie": (
        ("implantation", "recul_voirie", "value"),
        ("reculs", "voirie", "min_m"),
    ),
    "limites_separatives": (
        ("implantation", "recul_limites_separatives", "value"),
        ("reculs", "limites_separatives", "min_m"),
    ),
    "fond_parcelle": (
        ("implantation", "recul_fond_parcelle", "value"),
        ("reculs", "fond_parcelle", "min_m"),
    ),
}

EXTRACTION_BOUNDARY_CHAIN: FieldChain = (
    ("implantation", "implantation_en_limite", "value"),
    ("reculs", "implantation_en_limite", "autorisee"),
)

EXTRACTION_CES_CHAIN: FieldChain = (
    ("emprise", "ces_max", "value"),
    ("ces", "max_ratio"),
)

EXTRACTION_HEIGHT_CHAIN: FieldChain = (
    ("hauteur", "hauteur_max", "value"),
    ("hauteur", "max_m"),
)

EXTRACTION_PARKING_CHAINS: dict[str, FieldChain] = {
    "par_logement": (
        ("stationnement", "places_par_logement", "value"),
        ("stationnement", "par_logement"),
    ),
    "par_100m2": (
        ("stationnement", "places_par_m2_commerce", "value"),
        ("stationnement", "par_100m2"),
    ),
}


def _extraction_facade(data: Mapping, facade: str) -> ValueWithNote:
    # Facades only exist in the legacy shape
    value = to_number(get_path(data, "reculs", "facades", facade, "min_m"))
    note = safe_string(get_path(data, "reculs", "facades", facade, "note"))
    return ValueWithNote(value, note if value is not None else None)


def parse_extraction_result(data: Mapping) -> PartialRuleset:
    """Read an automated-extraction payload (either shape) into a ``PartialRuleset``."""
    setbacks = {
        key: ValueWithNote(
            first_number(data, chain),
            safe_string(get_path(data, "reculs", key, "note")),
        )
        for key, chain in EXTRACTION_SETBACK_CHAINS.items()
    }

    return PartialRuleset(
        voirie=setbacks["voirie"],
        limites_separatives=setbacks["limites_separatives"],
        fond_parcelle=setbacks["fond_parcelle"],
        implantation_en_limite=first_boolean(data, EXTRACTION_BOUNDARY_CHAIN),
        implantation_en_limite_note=safe_string(
            get_path(data, "reculs", "implantation_en_limite", "note")
        ),
        facade_avant=_extraction_facade(data, "avant"),
        facade_laterales=_extraction_facade(data, "laterales"),
        facade_fond=_extraction_facade(data, "fond"),
        ces_raw=first_number(data, EXTRACTION_CES_CHAIN),
        ces_note=safe_string(get_path(data, "ces", "note")),
        hauteur_max_m=first_number(data, EXTRACTION_HEIGHT_CHAIN),
        par_logement=first_number(data, EXTRACTION_PARKING_CHAINS["par_logement"]),
        par_100m2=first_number(data, EXTRACTION_PARKING_CHAINS["par_100m2"]),
        stationnement_note=safe_string(get_path(data, "stationnement", "note")),
        notes=[note for note in _string_list(data.get("notes")) if isinstance(note, str)],
        zone_libelle=safe_string(data.get("zone_libelle")),
        confidence_score=to_number(data.get("confidence_score")),
        source=safe_string(data.get("source")) or "AI_EXTRACTION",
        missing_label="by the extraction",
    )


def extraction_from_parser_response(response: Mapping, zone_code: str) -> dict | None:
    """Convert a multi-zone parser payload into a flat legacy extraction result.

    The parser returns ``{"zones_rulesets": [{"zone_code", "zone_libelle",
    "ruleset"}, ...]}``. Returns ``None`` when the requested zone is absent.
    """
    zones = response.get("zones_rulesets") if isinstance(response, Mapping) else None
    if not isinstance(zones, list):
        zones = []

    match = next(
        (z for z in zones if isinstance(z, Mapping) and zones_match(z.get("zone_code"), zone_code)),
        None,
    )
    if match is None:
        available = ", ".join(
            str(z.get("zone_code")) for z in zones if isinstance(z, Mapping) and z.get("zone_code")
        )
        logger.warning(
            "Zone %s not found in parser response (available: %s)",
            zone_code, available or "none",
        )
        return None

    ruleset = match.get("ruleset")
    if not isinstance(ruleset, Mapping):
        ruleset = {}

    def setback(key: str) -> float | None:
        return pick_first_number(
            get_path(ruleset, "reculs", key, "min_m"),
            get_path(ruleset, "reculs", key, "recul_min_m"),
        )

    voirie = setback("voirie")
    limites = setback("limites_separatives")
    fond = setback("fond_parcelle")
    boundary = safe_boolean(get_path(ruleset, "reculs", "implantation_en_limite", "autorisee"))
    height = pick_first_number(
        get_path(ruleset, "hauteur", "max_m"),
        get_path(ruleset, "hauteur", "hauteur_max_m"),
        get_path(ruleset, "hauteur", "hauteur_max"),
    )
    par_logement = pick_first_number(
        get_path(ruleset, "stationnement", "par_logement"),
        get_path(ruleset, "stationnement", "places_par_logement"),
    )
    par_100m2 = pick_first_number(
        get_path(ruleset, "stationnement", "par_100m2"),
        get_path(ruleset, "stationnement", "places_par_100m2"),
    )
    ces = pick_first_number(
        get_path(ruleset, "emprise", "ces_max_ratio"),
        get_path(ruleset, "emprise", "ces_max_percent"),
        get_path(ruleset, "ces", "max_ratio"),
    )

    missing = [
        name for name, value in (
            ("reculs.voirie.min_m", voirie),
            ("reculs.limites_separatives.min_m", limites),
            ("reculs.fond_parcelle.min_m", fond),
        ) if value is None
    ]
    completeness_ok = not missing
    if boundary is None:
        missing.append("implantation_en_limite (optional)")
    if par_logement is None and par_100m2 is None:
        missing.append("stationnement (optional)")
    if height is None:
        missing.append("hauteur.max_m (optional)")
    if ces is None:
        missing.append("ces.max_ratio (optional)")

    def note(*path: str) -> str | None:
        return safe_string(get_path(ruleset, *path))

    return {
        "completeness_ok": completeness_ok,
        "missing": missing,
        "confidence_score": to_number(ruleset.get("confidence_score")),
        "error": None,
        "source": "PLU_PARSER_LOCAL",
        "zone_libelle": safe_string(match.get("zone_libelle")),
        "reculs": {
            "voirie": {"min_m": voirie, "note": note("reculs", "voirie", "note")},
            "limites_separatives": {
                "min_m": limites,
                "note": note("reculs", "limites_separatives", "note"),
            },
            "fond_parcelle": {"min_m": fond, "note": note("reculs", "fond_parcelle", "note")},
            "implantation_en_limite": {
                "autorisee": boundary,
                "note": note("reculs", "implantation_en_limite", "note"),
            },
        },
        "hauteur": {"max_m": height},
        "stationnement": {
            "par_logement": par_logement,
            "par_100m2": par_100m2,
            "note": note("stationnement", "note"),
        },
        "ces": {
            "max_ratio": ces,
            "note": note("emprise", "note") or note("ces", "note"),
        },
        "notes": unique_strings(_string_list(ruleset.get("notes"))),
    }


# ---------------------------------------------------------------------------
# Canonical-summary source (precomputed per-zone aggregate)
# ---------------------------------------------------------------------------

def parse_canonical_summary(row: Mapping) -> PartialRuleset:
    """Read a canonical summary row. Facades are always derived downstream."""
    source = safe_string(row.get("source")) or "CANON"
    return PartialRuleset(
        voirie=ValueWithNote(to_number(row.get("recul_voirie_min_m"))),
        limites_separatives=ValueWithNote(to_number(row.get("recul_limites_min_m"))),
        fond_parcelle=ValueWithNote(to_number(row.get("recul_fond_min_m"))),
        implantation_en_limite=safe_boolean(row.get("implantation_en_limite_autorisee")),
        derive_all_facades=True,
        ces_raw=to_number(row.get("ces_max_ratio")),
        hauteur_max_m=to_number(row.get("hauteur_max_m")),
        par_logement=to_number(row.get("stationnement_par_logement")),
        par_100m2=to_number(row.get("stationnement_par_100m2")),
        stationnement_note=safe_string(row.get("stationnement_note")),
        notes=unique_strings([row.get("raw_rules_text")]),
        zone_libelle=safe_string(row.get("zone_libelle")),
        confidence_score=1.0,
        source=f"SQL_{source}",
        missing_label="in the canonical summary",
    )
