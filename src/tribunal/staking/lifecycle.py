"""Stake helpers wired to the task, reputation and wallet collaborators.

These cover the stake lifecycle outside disputes: sizing and posting the
stake when a worker claims a task, and releasing it when the submission is
accepted or rejected without a dispute.
"""

from __future__ import annotations

import logging

from ..core.exceptions import NotFoundError, ValidationException
from ..core.interfaces import ReputationDirectory, TaskDirectory, WalletResolver
from .models import StakeQuote, StakeResult, StakeStatus
from .provider import StakingProvider

logger = logging.getLogger(__name__)


def quote_task_stake(
    provider: StakingProvider,
    tasks: TaskDirectory,
    reputation: ReputationDirectory,
    task_id: str,
    worker_id: str,
) -> StakeQuote:
    """Stake a worker would have to post to claim a task."""
    task = tasks.get_task(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    strikes = provider.get_strike_count(worker_id)
    score = reputation.get_reliability(worker_id) or 0.0
    return provider.calculate_required_stake(task.bounty_amount, strikes, score)


def claim_task_stake(
    provider: StakingProvider,
    tasks: TaskDirectory,
    reputation: ReputationDirectory,
    wallets: WalletResolver,
    task_id: str,
    worker_id: str,
) -> StakeResult:
    """Post the stake for a claim.

    Raises:
        ValidationException: If the worker has not authorised enough funds.
    """
    quote = quote_task_stake(provider, tasks, reputation, task_id, worker_id)
    address = wallets.primary_wallet(worker_id)
    if address and not provider.check_allowance(address, quote.amount):
        raise ValidationException(
            "Insufficient staking allowance",
            field="allowance",
            value=quote.amount,
        )
    return provider.create_stake(
        task_id,
        worker_id,
        quote.bounty_amount,
        reputation=quote.reputation,
        worker_address=address,
    )


def release_task_stake(provider: StakingProvider, task_id: str, worker_id: str) -> StakeResult | None:
    """Release the stake after acceptance or an undisputed rejection.

    Returns None when the claim carried no stake or it is already settled.
    """
    stake = provider.get_stake(task_id, worker_id)
    if stake is None:
        logger.debug(f"No stake to release for task {task_id} worker {worker_id}")
        return None
    if stake.status != StakeStatus.HELD:
        logger.info(f"Stake for task {task_id} already {stake.status.value}; nothing to release")
        return None
    return provider.release_stake(task_id, worker_id)
