"""Core domain types shared across all plurules modules."""

from plurules.core.types import (
    Completeness,
    FacadeRule,
    PartialRuleset,
    PersistedExtraction,
    ResolutionInputs,
    ResolutionOutcome,
    ResolvedRuleset,
    SetbackRule,
    UserOverrideEntry,
    UserOverrideValues,
)

__all__ = [
    "Completeness",
    "FacadeRule",
    "PartialRuleset",
    "PersistedExtraction",
    "ResolutionInputs",
    "ResolutionOutcome",
    "ResolvedRuleset",
    "SetbackRule",
    "UserOverrideEntry",
    "UserOverrideValues",
]
