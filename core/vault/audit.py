"""
Audit - Checks that ciphertext blobs and version rows correspond one to one.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from core.vault.manager import Vault
from core.vault.models import FileVersion

logger = logging.getLogger(__name__)


@dataclass
class AuditReport:
    orphan_blobs: List[str] = field(default_factory=list)
    missing_blobs: List[FileVersion] = field(default_factory=list)
    leftovers: List[Path] = field(default_factory=list)
    repaired: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.orphan_blobs or self.missing_blobs or self.leftovers)


def _scan(vault: Vault) -> AuditReport:
    with vault.store.snapshot():
        rows = vault.store.all_blob_ids()
    on_disk = vault.blobs.list_ids()

    return AuditReport(
        orphan_blobs=sorted(on_disk - rows.keys()),
        missing_blobs=sorted(
            (record for blob_id, record in rows.items() if blob_id not in on_disk),
            key=lambda r: (r.name, r.version),
        ),
        leftovers=vault.blobs.leftovers(),
    )


def _repair(vault: Vault, report: AuditReport) -> AuditReport:
    blobs = vault.blobs

    # A row is authoritative: a removal interrupted before its commit left the
    # blob in the trash, so put it back.
    for record in report.missing_blobs:
        blobs.unstage_delete(record.blob_id)
        if blobs.exists(record.blob_id):
            report.repaired.append(f"restored blob of '{record.name}' v{record.version}")

    for blob_id in report.orphan_blobs:
        blobs.delete(blob_id)
        report.repaired.append(f"deleted orphan blob {blob_id}")

    for path in report.leftovers:
        if path.exists():
            path.unlink()
            report.repaired.append(f"deleted leftover {path.name}")

    after = _scan(vault)
    after.repaired = report.repaired
    return after


def audit_vault(vault: Vault, repair: bool = False) -> AuditReport:
    """
    Compare the blob directory with the version rows.

    Args:
        vault: Opened vault
        repair: Restore trashed blobs that still have a row and delete files that
            have none. Rows whose blob is gone for good are only reported.

    Returns:
        AuditReport: Problems found (after repair, those that remain)
    """
    if not repair:
        with vault.reading():
            return _scan(vault)

    # Repair only moves existing ciphertext around, no key is involved
    with vault.writing(validate=False):
        report = _repair(vault, _scan(vault))

    for action in report.repaired:
        logger.info("Audit repair: %s", action)
    return report
