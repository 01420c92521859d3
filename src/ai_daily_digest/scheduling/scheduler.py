from __future__ import annotations

import dataclasses
import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ai_daily_digest.core.api_config import ApiConfigStore, normalize_schedule, resolve_api_options
from ai_daily_digest.models import ScheduleEntry, StoredApiConfig
from ai_daily_digest.processing.errors import GenerationAlreadyRunning
from ai_daily_digest.processing.pipeline import DigestOrchestrator

logger = logging.getLogger(__name__)

JOB_PREFIX = "digest-"


class DigestScheduler:
    """One cron job per enabled schedule; every job calls the orchestrator."""

    def __init__(
        self,
        orchestrator: DigestOrchestrator,
        config_store: ApiConfigStore,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._config_store = config_store
        self._scheduler = scheduler or AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            }
        )

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def job_ids(self) -> list[str]:
        return sorted(job.id for job in self._scheduler.get_jobs() if job.id.startswith(JOB_PREFIX))

    def apply(self, config: StoredApiConfig | None) -> int:
        """Replace every digest job with the schedules in `config`. Returns the job count."""
        for job_id in self.job_ids():
            self._scheduler.remove_job(job_id)
        if config is None:
            return 0

        count = 0
        for position, raw in enumerate(config.get("schedules") or []):
            entry = normalize_schedule(dict(raw))
            if not entry.get("enabled", True):
                continue
            job_id = f"{JOB_PREFIX}{position}"
            self._scheduler.add_job(
                self.run_scheduled,
                CronTrigger(hour=entry["hour"], minute=entry["minute"]),
                args=[entry],
                id=job_id,
                name=entry.get("label") or f"Digest {entry['hour']:02d}:{entry['minute']:02d}",
                replace_existing=True,
            )
            count += 1
            logger.info(
                "Scheduled digest at %02d:%02d (%dh, top %d)",
                entry["hour"],
                entry["minute"],
                entry["hours"],
                entry["topN"],
            )
        return count

    async def run_scheduled(self, entry: ScheduleEntry) -> dict[str, Any] | None:
        if self._orchestrator.running:
            logger.info("Skipping scheduled digest, a generation is already running")
            return None
        api_key, options = self._config_store.api_options()
        if not api_key:
            logger.warning("Skipping scheduled digest, no API key configured")
            return None
        if entry.get("preset"):
            options = resolve_api_options(entry["preset"], entry.get("baseURL", ""), entry.get("model", ""))
        elif entry.get("baseURL") or entry.get("model"):
            options = dataclasses.replace(
                options,
                base_url=entry.get("baseURL") or options.base_url,
                model=entry.get("model") or options.model,
            )
        try:
            digest = await self._orchestrator.run_digest_generation(
                api_key, options, hours=entry["hours"], top_n=entry["topN"]
            )
        except GenerationAlreadyRunning:
            logger.info("Skipping scheduled digest, a generation is already running")
            return None
        except Exception as exc:
            logger.exception("Scheduled digest failed: %s", exc)
            return None
        return dict(digest)
