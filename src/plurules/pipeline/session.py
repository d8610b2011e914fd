"""Caller-side state for one resolution session.

Holds the current (document, zone) selection, the raw sources fetched so
far with their fetch status, and references to the snapshot caches the
caller owns. The engine itself never sees this object: ``resolved()``
builds a ``ResolutionInputs`` and hands it to ``arbitrate``.
"""

import logging
from datetime import datetime, timezone
from enum import Enum

from plurules.core.types import (
    PersistedExtraction,
    ResolutionInputs,
    ResolutionOutcome,
    ResolvedRuleset,
    UserOverrideEntry,
    UserOverrideValues,
)
from plurules.pipeline.arbitrator import arbitrate
from plurules.pipeline.cache import SnapshotCache
from plurules.pipeline.coerce import normalize_zone_code, zones_match
from plurules.pipeline.overrides import build_override_entry, override_key

logger = logging.getLogger(__name__)


class SourceStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


SOURCES = ("structured", "extraction", "canonical")


class ZoneSession:
    """Selection plus sources for the zone being worked on.

    Changing the document or the zone drops the extraction result and the
    active ruleset of the previous selection; a persisted extraction for
    the new selection, if any, is picked back up from the cache.
    """

    def __init__(
        self,
        commune_insee: str,
        extractions: SnapshotCache[PersistedExtraction],
        overrides: SnapshotCache[UserOverrideEntry],
    ) -> None:
        self.commune_insee = commune_insee
        self.extractions = extractions
        self.overrides = overrides

        self.document_id: str | None = None
        self.zone_code: str | None = None
        self.structured_records: list[dict] = []
        self.canonical_summary: dict | None = None
        self.extraction: PersistedExtraction | None = None
        self.active_ruleset: ResolvedRuleset | None = None
        self.status: dict[str, SourceStatus] = {name: SourceStatus.IDLE for name in SOURCES}

    @property
    def key(self) -> str | None:
        if not self.document_id or not self.zone_code:
            return None
        return override_key(self.document_id, self.zone_code)

    def select(self, document_id: str, zone_code: str) -> None:
        """Switch to a (document, zone) pair."""
        same_document = document_id == self.document_id
        same_zone = zones_match(zone_code, self.zone_code)
        self.document_id = document_id
        self.zone_code = normalize_zone_code(zone_code) or zone_code
        if same_document and same_zone:
            return

        self.active_ruleset = None
        self.extraction = self.extractions.get(self.key) if self.key else None
        self.status["extraction"] = SourceStatus.SUCCESS if self.extraction else SourceStatus.IDLE
        logger.debug(
            "Selected %s (persisted extraction: %s)", self.key, self.extraction is not None,
            extra={"document_id": document_id, "zone_code": self.zone_code, "step": "select"},
        )

    def mark_loading(self, source: str) -> None:
        self.status[source] = SourceStatus.LOADING

    def mark_failed(self, source: str) -> None:
        """Record an upstream failure; the source is then treated as absent."""
        self.status[source] = SourceStatus.ERROR
        if source == "structured":
            self.structured_records = []
        elif source == "canonical":
            self.canonical_summary = None
        elif source == "extraction":
            self.extraction = None

    def load_structured(self, records: list[dict]) -> None:
        self.structured_records = list(records)
        self.status["structured"] = SourceStatus.SUCCESS

    def load_canonical(self, row: dict | None) -> None:
        self.canonical_summary = row
        self.status["canonical"] = SourceStatus.SUCCESS

    def record_extraction(self, data: dict, now: datetime | None = None) -> PersistedExtraction:
        """Pin an extraction result to the current selection and persist it."""
        if self.key is None:
            raise ValueError("No document/zone selected")
        stamp = (now or datetime.now(timezone.utc)).isoformat()
        extraction = PersistedExtraction(
            document_id=self.document_id,
            zone_code=self.zone_code,
            commune_insee=self.commune_insee,
            extracted_at=stamp,
            data=data,
        )
        self.extractions.set(self.key, extraction)
        self.extraction = extraction
        self.status["extraction"] = SourceStatus.SUCCESS
        return extraction

    def activate(self, ruleset: ResolvedRuleset | None) -> None:
        """Pin (or clear) the ruleset produced by the last extraction cycle."""
        self.active_ruleset = ruleset

    def save_overrides(self, values: UserOverrideValues, now: datetime | None = None) -> UserOverrideEntry:
        """Replace the stored corrections for the current selection."""
        if self.key is None:
            raise ValueError("No document/zone selected")
        entry = build_override_entry(values, now)
        self.overrides.set(self.key, entry)
        return entry

    def reset_overrides(self) -> None:
        if self.key is not None:
            self.overrides.set(self.key, None)

    def inputs(self) -> ResolutionInputs:
        return ResolutionInputs(
            document_id=self.document_id or "",
            commune_insee=self.commune_insee,
            zone_code=self.zone_code or "",
            structured_records=self.structured_records,
            extraction=self.extraction,
            canonical_summary=self.canonical_summary,
            active_ruleset=self.active_ruleset,
            overrides=self.overrides,
        )

    def resolved(self) -> ResolutionOutcome | None:
        """Current authoritative ruleset, or None while nothing is selected."""
        if self.key is None:
            return None
        return arbitrate(self.inputs())
