"""
Staging - Keeps ciphertext files and metadata rows in step across a commit.

A change to the vault touches two stores that cannot share one transaction: the
blob directory and the metadata database. Every file mutation goes through
``apply_staged``:

1. ``stage``    prepare the filesystem side (write new blobs, move old ones aside)
2. ``commit``   run the metadata transaction
3. ``finalize`` drop what the commit made obsolete (trashed blobs)

If the commit fails, ``revert`` undoes the stage so no blob is left without a row
and no row without a blob.
"""

import logging
from typing import Callable, TypeVar

from core.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _noop() -> None:
    return None


def apply_staged(
    stage: Callable[[], None],
    commit: Callable[[], T],
    revert: Callable[[], None],
    finalize: Callable[[], None] = _noop,
    describe: str = "vault change",
) -> T:
    """
    Run a staged change.

    Args:
        stage: Filesystem preparation; it must clean up after itself if it fails
        commit: Metadata transaction, its return value is passed through
        revert: Undo of ``stage``, run when ``commit`` raises (interrupts included)
        finalize: Cleanup once the commit is durable
        describe: Human readable label used in logs and errors

    Returns:
        The result of ``commit``

    Raises:
        StorageError: If ``revert`` fails, leaving artifacts an operator must audit
    """
    stage()
    try:
        result = commit()
    except BaseException as commit_error:
        logger.debug("Commit of %s failed, reverting: %s", describe, commit_error)
        try:
            revert()
        except Exception as revert_error:
            raise StorageError(
                f"{describe} failed ({commit_error}) and its staged files could not be "
                f"cleaned up ({revert_error}); run 'dark-matter vault audit --repair'"
            ) from commit_error
        raise

    try:
        finalize()
    except OSError as e:
        # The commit is durable; leftovers are picked up by the audit pass
        logger.warning("Cleanup after %s incomplete: %s", describe, e)
    return result
