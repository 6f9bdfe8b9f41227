from unittest import mock

import pytest

from core.errors import StorageError
from core.vault.staging import apply_staged


def test_success_runs_stage_commit_finalize_in_order():
    calls = []

    result = apply_staged(
        stage=lambda: calls.append("stage"),
        commit=lambda: calls.append("commit") or "done",
        revert=lambda: calls.append("revert"),
        finalize=lambda: calls.append("finalize"),
    )

    assert result == "done"
    assert calls == ["stage", "commit", "finalize"]


def test_commit_failure_reverts_and_reraises():
    revert = mock.Mock()
    finalize = mock.Mock()
    commit = mock.Mock(side_effect=StorageError("constraint failed"))

    with pytest.raises(StorageError, match="constraint failed"):
        apply_staged(mock.Mock(), commit, revert, finalize)

    revert.assert_called_once_with()
    finalize.assert_not_called()


def test_interrupt_during_commit_reverts():
    revert = mock.Mock()

    with pytest.raises(KeyboardInterrupt):
        apply_staged(mock.Mock(), mock.Mock(side_effect=KeyboardInterrupt), revert)

    revert.assert_called_once_with()


def test_failed_revert_reports_orphans():
    commit = mock.Mock(side_effect=StorageError("commit failed"))
    revert = mock.Mock(side_effect=OSError("read-only filesystem"))

    with pytest.raises(StorageError, match="audit --repair") as exc_info:
        apply_staged(mock.Mock(), commit, revert, describe="add of 'x'")

    assert "add of 'x'" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, StorageError)


def test_stage_failure_skips_commit():
    commit = mock.Mock()
    revert = mock.Mock()

    with pytest.raises(OSError):
        apply_staged(mock.Mock(side_effect=OSError("no space")), commit, revert)

    commit.assert_not_called()
    revert.assert_not_called()


def test_finalize_failure_is_not_surfaced():
    with mock.patch("core.vault.staging.logger") as logger:
        result = apply_staged(
            mock.Mock(),
            lambda: 42,
            mock.Mock(),
            mock.Mock(side_effect=OSError("busy")),
            describe="removal of 'x'",
        )

    assert result == 42
    logger.warning.assert_called_once()
    assert "removal of 'x'" in logger.warning.call_args.args
