"""
Periodic clean-up of games nobody plays anymore.

Two independent cycles run on a background scheduler:
- every 10 minutes, games without any update for 30 minutes are abandoned
- every hour, games older than 2 hours (by last update, or creation) are abandoned
An abandoned game is COMPLETED with the waiting player as winner, and its players are released from the match registry.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from src.core.config import Settings
from src.core.models import utc_now
from src.online.match_registry import MatchRegistry
from src.services.game_service import GameService

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    checked: int = 0
    abandoned: int = 0
    failed: int = 0


class AbandonmentSweeper:
    def __init__(
        self,
        game_service: GameService,
        registry: MatchRegistry,
        settings: Settings,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.game_service = game_service
        self.registry = registry
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler()

    def start(self) -> None:
        self.scheduler.add_job(
            self.sweep_abandoned,
            trigger="interval",
            seconds=self.settings.sweep_short_interval_seconds,
            id="sweep-abandoned-games",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.sweep_stale,
            trigger="interval",
            seconds=self.settings.sweep_long_interval_seconds,
            id="sweep-stale-games",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            "Abandonment sweeper started (every %ss / %ss)",
            self.settings.sweep_short_interval_seconds,
            self.settings.sweep_long_interval_seconds,
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Abandonment sweeper stopped")

    # -- Cycles --
    def sweep_abandoned(self, now: Optional[datetime] = None) -> SweepReport:
        """Short cycle: no update for `abandon_after_minutes`."""
        now = now or utc_now()
        threshold = now - timedelta(minutes=self.settings.abandon_after_minutes)
        report = self._sweep(threshold, now)
        logger.info(
            "Abandoned-game sweep: %s checked, %s abandoned, %s failed",
            report.checked,
            report.abandoned,
            report.failed,
        )
        return report

    def sweep_stale(self, now: Optional[datetime] = None) -> SweepReport:
        """Long cycle: nothing happened for `stale_after_hours`, counting from creation when there was no update."""
        now = now or utc_now()
        threshold = now - timedelta(hours=self.settings.stale_after_hours)
        report = self._sweep(threshold, now)
        logger.info(
            "Stale-game sweep: %s checked, %s abandoned, %s failed",
            report.checked,
            report.abandoned,
            report.failed,
        )
        return report

    def _sweep(self, threshold: datetime, now: datetime) -> SweepReport:
        report = SweepReport()
        for game in self.game_service.find_active_games():
            report.checked += 1
            if game.last_activity() >= threshold:
                continue
            try:
                abandoned = self.game_service.abandon_game(game.id, threshold, now)
                if abandoned is None:
                    continue
                report.abandoned += 1
                for player_id in abandoned.player_ids:
                    self.registry.clear_player_matches(player_id, now)
            except Exception:
                report.failed += 1
                logger.exception("Failed to abandon game %s", game.id)
        return report
