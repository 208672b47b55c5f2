from __future__ import annotations

import pytest

from brewstrap.models import ActionOutcome, ItemDescriptor, ItemKind, OutcomeKind, Stage
from brewstrap.recorder import OutcomeRecorder


def _formula(name: str) -> ItemDescriptor:
    return ItemDescriptor(id=name, kind=ItemKind.FORMULA, source=name)


def test_finalize_counts_every_variant() -> None:
    recorder = OutcomeRecorder()
    recorder.record(Stage.PACKAGE_PROVISION, _formula("git"), ActionOutcome.installed())
    recorder.record(Stage.PACKAGE_PROVISION, _formula("uv"), ActionOutcome.already_present())
    recorder.record(Stage.PACKAGE_PROVISION, _formula("wget"), ActionOutcome.failed("No available formula"))

    summary = recorder.finalize()

    assert summary.total == 3
    assert summary.count(OutcomeKind.INSTALLED) == 1
    assert summary.count(OutcomeKind.ALREADY_PRESENT) == 1
    assert summary.count(OutcomeKind.FAILED) == 1
    assert summary.count(OutcomeKind.SKIPPED) == 0
    assert summary.has_failures
    assert summary.stage_counts[Stage.PACKAGE_PROVISION][OutcomeKind.INSTALLED] == 1


def test_duplicate_ids_are_counted_twice() -> None:
    recorder = OutcomeRecorder()
    recorder.record(Stage.PACKAGE_PROVISION, _formula("git"), ActionOutcome.installed())
    recorder.record(Stage.CONFIG_PROVISION, _formula("git"), ActionOutcome.already_present())

    summary = recorder.finalize()

    assert summary.total == 2
    assert set(summary.stage_counts) == {Stage.PACKAGE_PROVISION, Stage.CONFIG_PROVISION}


def test_empty_run_still_reports_zero_counts() -> None:
    summary = OutcomeRecorder().finalize()

    assert summary.total == 0
    assert all(summary.count(kind) == 0 for kind in OutcomeKind)
    assert not summary.has_failures


def test_recording_after_finalize_is_rejected() -> None:
    recorder = OutcomeRecorder()
    summary = recorder.finalize()

    with pytest.raises(RuntimeError):
        recorder.record(Stage.PACKAGE_PROVISION, _formula("git"), ActionOutcome.installed())

    assert recorder.finalize() is summary
    with pytest.raises(TypeError):
        summary.counts[OutcomeKind.FAILED] = 5  # type: ignore[index]


def test_warnings_are_collected_per_item() -> None:
    recorder = OutcomeRecorder()
    item = ItemDescriptor(id="ghostty-config", kind=ItemKind.CONFIG_FILE, source="/tmp/src")
    recorder.record(Stage.CONFIG_PROVISION, item, ActionOutcome.installed(warnings=("backup failed",)))

    assert recorder.finalize().warnings == (("ghostty-config", "backup failed"),)
