"""Build the configured staking provider."""

from __future__ import annotations

import logging

from ..core.config import CoreSettings, get_config
from ..core.exceptions import ConfigException
from ..storage.base import Store
from .external_provider import ExternalStakingProvider
from .gateway import FundsGateway, HttpFundsGateway
from .ledger_provider import LedgerStakingProvider
from .provider import StakingProvider

logger = logging.getLogger(__name__)


def create_staking_provider(
    store: Store,
    config: CoreSettings | None = None,
    gateway: FundsGateway | None = None,
) -> StakingProvider:
    """Create the provider named by ``staking_provider``.

    Raises:
        ConfigException: If the provider is unknown or the external provider
            has no gateway URL.
    """
    config = config or get_config()
    name = config.staking_provider.lower()

    if name == "ledger":
        provider: StakingProvider = LedgerStakingProvider(store, config.staking_policy)
    elif name == "external":
        if gateway is None:
            if not config.settlement_gateway_url:
                raise ConfigException(
                    "External staking requires a settlement gateway URL",
                    missing_vars=["TRIBUNAL_SETTLEMENT_GATEWAY_URL"],
                )
            gateway = HttpFundsGateway(**config.gateway_config)
        provider = ExternalStakingProvider(store, gateway, config.staking_policy)
    else:
        raise ConfigException(f"Unknown staking provider: {config.staking_provider}")

    logger.info(f"Using {provider.name} staking provider")
    return provider
