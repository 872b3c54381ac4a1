"""Builds the handler matching a connection's platform"""

import logging
from typing import Optional

from blockerwatch.config import ConnectionConfig, DnsBlockerType, SummaryFieldMap
from blockerwatch.integrations.base import DnsBlockerHandler
from blockerwatch.integrations.adguard.client import AdGuardHomeHandler
from blockerwatch.integrations.pihole.client import PiHoleHandler
from blockerwatch.utils.http_client import HttpClient
from blockerwatch.utils.time_format import Clock

logger = logging.getLogger(__name__)


def create_handler(
    config: Optional[ConnectionConfig],
    http_client: Optional[HttpClient] = None,
    clock: Optional[Clock] = None,
    field_map: Optional[SummaryFieldMap] = None,
) -> DnsBlockerHandler:
    """Return a PiHoleHandler or AdGuardHomeHandler for ``config``.

    A missing platform means Pi-hole, matching configurations written before
    AdGuard Home support existed.

    Raises:
        ValueError: config is None
    """
    if config is None:
        raise ValueError("ConnectionConfig cannot be None")

    platform = config.platform or DnsBlockerType.PIHOLE
    logger.info(f"Creating {platform.display_name} handler for {config.address}")

    if platform == DnsBlockerType.ADGUARD_HOME:
        return AdGuardHomeHandler(config, http_client=http_client, clock=clock)
    return PiHoleHandler(config, http_client=http_client, clock=clock, field_map=field_map)
