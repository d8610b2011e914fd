"""User corrections layered on top of any resolved ruleset.

Overrides always win for the fields they carry. When a core setback is
corrected, a facade that was only ever derived from it (or unknown) is
re-derived so the two never disagree.
"""

import copy
import logging
from datetime import datetime, timezone

import mlflow
from mlflow.entities import SpanType

from plurules.core.types import (
    ResolvedRuleset,
    SetbackRule,
    UserOverrideEntry,
    UserOverrideValues,
)
from plurules.pipeline.coerce import normalize_zone_code, safe_boolean, safe_string, to_number
from plurules.pipeline.completeness import evaluate_completeness
from plurules.pipeline.resolver import FACADE_DERIVATION, derive_facade, normalize_footprint_ratio

logger = logging.getLogger(__name__)

USER_NOTE = "Corrected by user"
USER_NOTE_PREFIX = "[User note]"
USER_SOURCE_SUFFIX = "+USER"
USER_ONLY_SOURCE = "USER_OVERRIDDEN"

# override field -> (setback attribute, facade it feeds)
_SETBACK_OVERRIDES = (
    ("voirie_min_m", "voirie", "avant"),
    ("limites_separatives_min_m", "limites_separatives", "laterales"),
    ("fond_parcelle_min_m", "fond_parcelle", "fond"),
)


def override_key(document_id: str, zone_code: str) -> str:
    """Storage key for an override entry: ``"<document_id>::<ZONE_CODE>"``."""
    return f"{document_id}::{normalize_zone_code(zone_code) or zone_code}"


def build_override_entry(values: UserOverrideValues, now: datetime | None = None) -> UserOverrideEntry:
    """Stamp a fresh entry; saving always replaces the previous one wholesale."""
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return UserOverrideEntry(updated_at=stamp, overrides=values)


@mlflow.trace(name="apply_user_overrides", span_type=SpanType.CHAIN)
def apply_user_overrides(
    ruleset: ResolvedRuleset,
    overrides: UserOverrideValues | None,
) -> ResolvedRuleset:
    """Return a copy of ``ruleset`` with the user's corrections applied.

    A correction that does not coerce (``"abc"`` for a setback, a
    footprint above 100 %) is skipped rather than applied as null.
    """
    if overrides is None:
        return ruleset

    result = copy.deepcopy(ruleset)
    reculs = result.reculs

    for field_name, setback_attr, facade_attr in _SETBACK_OVERRIDES:
        raw = getattr(overrides, field_name)
        if raw is None:
            continue
        value = to_number(raw)
        if value is None:
            logger.info("Ignoring non-numeric override %s=%r", field_name, raw)
            continue
        setattr(reculs, setback_attr, SetbackRule(value=value, type="FIXED", note=USER_NOTE))

        facade = getattr(reculs.facades, facade_attr)
        if facade.derived or facade.type == "UNKNOWN" or facade.value is None:
            _, label = FACADE_DERIVATION[facade_attr]
            setattr(
                reculs.facades,
                facade_attr,
                derive_facade(getattr(reculs, setback_attr), label, suffix=" (user)"),
            )

    if overrides.implantation_en_limite_autorisee is not None:
        allowed = safe_boolean(overrides.implantation_en_limite_autorisee)
        if allowed is not None:
            reculs.implantation_en_limite.autorisee = allowed
            reculs.implantation_en_limite.note = USER_NOTE

    if overrides.ces_max_ratio is not None:
        ratio, flag = normalize_footprint_ratio(to_number(overrides.ces_max_ratio))
        if ratio is not None:
            result.ces.max_ratio = ratio
            result.ces.note = USER_NOTE if flag is None else f"{USER_NOTE}. {flag}"
        elif flag is not None:
            result.notes = _append_note(result.notes, f"User footprint correction rejected: {flag}")

    if overrides.hauteur_max_m is not None:
        height = to_number(overrides.hauteur_max_m)
        if height is not None:
            result.hauteur.max_m = height
            result.hauteur.note = USER_NOTE

    parking_corrected = False
    for field_name, attr in (
        ("stationnement_par_logement", "par_logement"),
        ("stationnement_par_100m2", "par_100m2"),
    ):
        raw = getattr(overrides, field_name)
        if raw is None:
            continue
        value = to_number(raw)
        if value is not None:
            setattr(result.stationnement, attr, value)
            parking_corrected = True
    if parking_corrected:
        result.stationnement.note = USER_NOTE

    user_text = safe_string(overrides.notes_append)
    if user_text:
        result.notes = _append_note(result.notes, f"{USER_NOTE_PREFIX} {user_text}")

    result.source = _user_source(result.source)
    result.completeness = evaluate_completeness(result)
    return result


def _user_source(source: str | None) -> str:
    if not source:
        return USER_ONLY_SOURCE
    if source == USER_ONLY_SOURCE or source.endswith(USER_SOURCE_SUFFIX):
        return source
    return f"{source}{USER_SOURCE_SUFFIX}"


def _append_note(notes: list[str], note: str) -> list[str]:
    return notes if note in notes else [*notes, note]
