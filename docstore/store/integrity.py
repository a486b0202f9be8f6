"""
Chain integrity — verify a document's back-link chain and repair a dangling pointer.

A write that fails between the pointer advance and the log insert leaves the
Document Index naming a revision the log never received. verify() detects
that (and, defensively, broken links and cycles); repair() rolls the pointer
back to the value the failed advance displaced, with a conditional update so
a newer writer is never overridden. Revisions are never rewritten.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Set

from docstore.engine import logging as event_log
from docstore.engine.errors import RevisionNotFoundError
from docstore.store.index import DocumentIndex
from docstore.store.models import ChainReport, ChainStatus
from docstore.store.revisions import RevisionLog

logger = logging.getLogger("docstore.store.integrity")


class ChainVerifier:
    def __init__(self, index: DocumentIndex, log: RevisionLog):
        self._index = index
        self._log = log

    def verify(self, doc_id: str) -> ChainReport:
        """Walk previous_revision links from the latest pointer to the first revision."""
        doc = self._index.fetch(doc_id)
        report = ChainReport(doc_id=doc_id, latest_revision=doc.latest_revision)

        seen: Set[str] = set()
        current = doc.latest_revision
        while current:
            if current in seen:
                report.status = ChainStatus.CYCLE
                report.broken_revision = current
                break
            try:
                revision = self._log.lookup(doc_id, current)
            except RevisionNotFoundError:
                report.status = (
                    ChainStatus.DANGLING_LATEST
                    if current == doc.latest_revision
                    else ChainStatus.BROKEN_LINK
                )
                report.broken_revision = current
                break
            seen.add(current)
            report.revisions.append(current)
            current = revision.previous_revision

        if not report.ok:
            logger.warning(
                f"Chain of '{doc_id}' is {report.status.value} at '{report.broken_revision}'"
            )
        return report

    def repair(self, doc_id: str) -> ChainReport:
        """
        Roll a dangling latest pointer back to the revision it replaced.

        Only DANGLING_LATEST is repaired; other statuses are returned as found.
        """
        report = self.verify(doc_id)
        if report.status != ChainStatus.DANGLING_LATEST:
            return report

        doc = self._index.fetch(doc_id)
        restore_latest = doc.previous_revision
        restore_previous = ""
        if restore_latest:
            try:
                restore_previous = self._log.lookup(doc_id, restore_latest).previous_revision
            except RevisionNotFoundError:
                logger.warning(
                    f"'{doc_id}' restore target '{restore_latest}' is missing too; "
                    f"run repair again after this step"
                )

        rolled = self._index.rollback_pointer(
            doc_id,
            broken_revision=report.broken_revision,
            restore_latest=restore_latest,
            restore_previous=restore_previous,
            now=datetime.now(timezone.utc),
        )
        event_log.log(
            event_log.log_chain_repair(
                doc_id,
                action="rollback" if rolled else "skipped",
                status_before=report.status.value,
                broken_revision=report.broken_revision,
                restored_revision=restore_latest if rolled else None,
            )
        )
        if rolled:
            logger.info(
                f"Repaired '{doc_id}': pointer rolled back from "
                f"'{report.broken_revision}' to '{restore_latest or '-'}'"
            )
        else:
            logger.info(f"Repair of '{doc_id}' skipped: pointer moved since verification")

        result = self.verify(doc_id)
        result.repaired = rolled
        return result
