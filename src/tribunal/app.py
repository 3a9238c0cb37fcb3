# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Application container.

``create_tribunal`` builds a fully wired engine from configuration. Any
collaborator not supplied falls back to its in-memory implementation,
which is what tests and local runs use.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from .core.collaborators import (
    InMemoryReputationDirectory,
    InMemoryTaskDirectory,
    RecordingEventPublisher,
    StaticWalletResolver,
)
from .core.config import CoreSettings, get_config
from .core.interfaces import EventPublisher, ReputationDirectory, TaskDirectory, WalletResolver
from .core.logging import configure_logging
from .disputes.deadlines import DeadlineSweepResult, process_dispute_deadlines
from .disputes.service import DisputeService
from .staking.factory import create_staking_provider
from .staking.gateway import FundsGateway
from .staking.provider import StakingProvider
from .storage.base import Store
from .storage.memory import MemoryStore

logger = logging.getLogger(__name__)


class Tribunal:
    """Holds the store, collaborators, staking provider and dispute service."""

    def __init__(
        self,
        config: CoreSettings,
        store: Store,
        tasks: TaskDirectory,
        reputation: ReputationDirectory,
        wallets: WalletResolver,
        events: EventPublisher,
        provider: StakingProvider,
        disputes: DisputeService,
    ):
        self.config = config
        self.store = store
        self.tasks = tasks
        self.reputation = reputation
        self.wallets = wallets
        self.events = events
        self.provider = provider
        self.disputes = disputes
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self, configure_logs: bool = False) -> None:
        """Open the store.

        With ``configure_logs`` the root logger is set up from this
        instance's settings (level, format and optional log file).
        """
        if self._started:
            return
        if configure_logs:
            configure_logging(config=self.config)
        self.store.open()
        self._started = True
        logger.info(f"Tribunal started (staking provider: {self.provider.name})")

    def stop(self) -> None:
        if not self._started:
            return
        try:
            self.provider.close()
        finally:
            self.store.close()
            self._started = False
        logger.info("Tribunal stopped")

    def sweep(self, now: datetime | None = None, dry_run: bool = False) -> DeadlineSweepResult:
        """Run one deadline sweep."""
        return process_dispute_deadlines(self.disputes, now=now, dry_run=dry_run)

    def __enter__(self) -> Tribunal:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


def create_tribunal(
    config: CoreSettings | None = None,
    store: Store | None = None,
    tasks: TaskDirectory | None = None,
    reputation: ReputationDirectory | None = None,
    wallets: WalletResolver | None = None,
    events: EventPublisher | None = None,
    gateway: FundsGateway | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Tribunal:
    """Create a wired Tribunal.

    Args:
        config: Settings (defaults to ``get_config()``)
        store: Storage backend (defaults to a fresh ``MemoryStore``)
        tasks: Task directory (defaults to in-memory)
        reputation: Reputation directory (defaults to in-memory)
        wallets: Wallet resolver (defaults to an empty static mapping)
        events: Event sink (defaults to a recording publisher)
        gateway: Funds gateway for the external provider
        clock: Time source for the dispute service

    Raises:
        ConfigException: If the staking provider cannot be built.
    """
    config = config or get_config()
    store = store if store is not None else MemoryStore()
    tasks = tasks if tasks is not None else InMemoryTaskDirectory()
    reputation = reputation if reputation is not None else InMemoryReputationDirectory()
    wallets = wallets if wallets is not None else StaticWalletResolver()
    events = events if events is not None else RecordingEventPublisher()

    provider = create_staking_provider(store, config=config, gateway=gateway)
    disputes = DisputeService(
        store,
        tasks,
        reputation,
        wallets,
        events,
        provider,
        policy=config.dispute_policy,
        clock=clock,
    )
    return Tribunal(
        config=config,
        store=store,
        tasks=tasks,
        reputation=reputation,
        wallets=wallets,
        events=events,
        provider=provider,
        disputes=disputes,
    )
