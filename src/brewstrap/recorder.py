"""Append-only ledger of per-item outcomes."""

from __future__ import annotations

from types import MappingProxyType

from .models import ActionOutcome, ItemDescriptor, OutcomeEntry, OutcomeKind, RunSummary, Stage


class OutcomeRecorder:
    """Collects outcomes for one run and finalizes them into a ``RunSummary``.

    Entries are never deduplicated: an id that shows up twice is counted twice.
    """

    def __init__(self) -> None:
        self._entries: list[OutcomeEntry] = []
        self._summary: RunSummary | None = None

    def record(self, stage: Stage, item: ItemDescriptor, outcome: ActionOutcome) -> OutcomeEntry:
        if self._summary is not None:
            raise RuntimeError("Cannot record outcomes after the run has been finalized")
        entry = OutcomeEntry(stage=stage, item=item, outcome=outcome)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[OutcomeEntry, ...]:
        return tuple(self._entries)

    def finalize(self) -> RunSummary:
        if self._summary is not None:
            return self._summary

        counts = {kind: 0 for kind in OutcomeKind}
        stage_counts: dict[Stage, dict[OutcomeKind, int]] = {}
        for entry in self._entries:
            counts[entry.outcome.kind] += 1
            per_stage = stage_counts.setdefault(entry.stage, {kind: 0 for kind in OutcomeKind})
            per_stage[entry.outcome.kind] += 1

        self._summary = RunSummary(
            entries=tuple(self._entries),
            counts=MappingProxyType(counts),
            stage_counts=MappingProxyType(
                {stage: MappingProxyType(values) for stage, values in stage_counts.items()}
            ),
        )
        return self._summary
