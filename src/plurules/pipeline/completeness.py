"""Completeness verdict: blocking vs. optional missing fields.

Only the three core setbacks block downstream layout; everything else is
reported but never flips ``ok``.
"""

from plurules.core.types import CORE_SETBACK_FIELDS, Completeness, ResolvedRuleset


def evaluate_completeness(ruleset: ResolvedRuleset) -> Completeness:
    """Compute the verdict from the ruleset's current values (never inherited)."""
    reculs = ruleset.reculs
    core_values = (
        reculs.voirie.value,
        reculs.limites_separatives.value,
        reculs.fond_parcelle.value,
    )
    missing = [name for name, value in zip(CORE_SETBACK_FIELDS, core_values) if value is None]

    optional: list[str] = []
    if reculs.implantation_en_limite.autorisee is None:
        optional.append("reculs.implantation_en_limite.autorisee")
    if ruleset.stationnement.par_logement is None and ruleset.stationnement.par_100m2 is None:
        optional.append("stationnement")
    if ruleset.hauteur.max_m is None:
        optional.append("hauteur.max_m")
    if ruleset.ces.max_ratio is None:
        optional.append("ces.max_ratio")

    return Completeness(ok=not missing, missing=missing, optional_missing=optional)
