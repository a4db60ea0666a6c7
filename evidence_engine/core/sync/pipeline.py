"""
Deterministic driver for the sync capabilities.

discover -> for each key: dedup_check -> enrich -> extract -> analyze ->
match_criteria -> persist -> cross_link.

Only discovery failing fails the run. Any error inside one item is
logged to the job and counted, and the loop moves on to the next key.
"""

import logging

from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.sync.capabilities import SyncCapabilities
from evidence_engine.core.sync.types import NaturalKey, SyncResult, SyncScope

logger = logging.getLogger(__name__)

DRY_RUN_LIMIT = 20


class SyncPipeline:
    """
    Runs one sync over a capability set, reporting through a JobRecorder.

    Args:
        capabilities: Source-specific capability set.
        recorder: Log/progress sink of the job running this sync.
        update_existing: Re-process items that are already stored instead
            of skipping them.
        dry_run: Cap discovery at DRY_RUN_LIMIT keys and skip persist and
            cross_link, so nothing is written.
    """

    def __init__(
        self,
        capabilities: SyncCapabilities,
        recorder: JobRecorder,
        update_existing: bool = False,
        dry_run: bool = False,
    ) -> None:
        self.capabilities = capabilities
        self.recorder = recorder
        self.update_existing = update_existing
        self.dry_run = dry_run

    async def run(self, scope: SyncScope) -> SyncResult:
        """
        Run the sync.

        Raises:
            Exception: Whatever discover() raised; the job fails on it.
        """
        result = SyncResult(dry_run=self.dry_run)
        source = self.capabilities.source

        await self.recorder.status(f"Discovering {source} items...")
        if self.dry_run:
            await self.recorder.info(f"Dry run: limited to {DRY_RUN_LIMIT} items, nothing is saved")
            scope.limit = min(scope.limit, DRY_RUN_LIMIT) if scope.limit else DRY_RUN_LIMIT

        keys = await self.capabilities.discover(scope)
        if self.dry_run:
            keys = keys[:DRY_RUN_LIMIT]

        result.discovered = len(keys)
        await self.recorder.info(f"Discovered {len(keys)} {source} items")

        if not keys:
            await self.recorder.progress(100, "Nothing to sync")
            return result

        for key in keys:
            if await self.recorder.is_cancelled():
                result.cancelled = True
                await self.recorder.warn(
                    f"Cancelled after {result.processed}/{result.discovered} items"
                )
                break

            try:
                outcome = await self._process(key, result)
            except Exception as e:
                result.failed += 1
                logger.debug(f"Item {key} failed", exc_info=True)
                await self.recorder.error(f"Failed to process {key}: {e}")
            else:
                if outcome == "skipped":
                    result.skipped += 1
                else:
                    result.succeeded += 1

            result.processed += 1
            await self.recorder.progress(
                result.processed / result.discovered * 100,
                f"Processed {result.processed}/{result.discovered} items",
            )

        await self.recorder.info(
            f"Sync finished: {result.succeeded} succeeded, {result.failed} failed, "
            f"{result.skipped} skipped, {result.linked} links"
        )
        return result

    async def _process(self, key: NaturalKey, result: SyncResult) -> str:
        caps = self.capabilities

        existing = await caps.dedup_check(key)
        if existing is not None and not self.update_existing:
            await self.recorder.debug(f"Skipping {key}: already synced")
            return "skipped"

        item = await caps.enrich(key)
        refs = caps.extract(item)
        item_analysis = await caps.analyze(item)
        matches = await caps.match_criteria(item, item_analysis)

        if self.dry_run:
            await self.recorder.info(
                f"[dry run] {key}: {item_analysis.category}/{item_analysis.scope}, "
                f"{len(matches)} criteria, {len(refs.ticket_keys) + len(refs.pr_refs)} refs"
            )
            return "analyzed"

        await caps.persist(item, refs, item_analysis, matches)
        result.linked += await caps.cross_link(item, refs)

        verb = "Updated" if existing is not None else "Saved"
        await self.recorder.info(f"{verb} {key}: {item_analysis.category}/{item_analysis.scope}")
        return "saved"
