"""Factory for wiring an engine from settings.

Picks Redis or in-memory backends and the channel adapters whose
credentials are configured.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .audit.logger import LoggingAuditSink
from .audit.memory import InMemoryAuditSink
from .delivery.channel import ChannelType
from .delivery.dispatcher import DeliveryDispatcher
from .engine import ResetWorkflowEngine
from .ratelimit.memory import InMemoryRateLimiter
from .ratelimit.policy import RateLimitPolicy
from .ratelimit.redis import RedisRateLimiter
from .retry import RetryPolicy
from .store.memory import InMemorySecretRecordStore
from .store.redis import RedisSecretRecordStore

if TYPE_CHECKING:
    from .config import ResetConfig, ResetSettings
    from .ports import IAuditSink, IChannelAdapter, IIdentityProvider

logger = logging.getLogger(__name__)


def build_adapters(settings: ResetSettings) -> dict[ChannelType, IChannelAdapter]:
    """Channel adapters for every provider with credentials in ``settings``.

    Falls back to console output for every channel when nothing is
    configured (development only: codes are printed). ``ChannelType.APP``
    has no provider adapter here; supply one through ``build_engine``.
    """
    adapters: dict[ChannelType, IChannelAdapter] = {}
    if settings.twilio_account_sid:
        from .delivery.twilio import TwilioSmsAdapter

        adapters[ChannelType.SMS] = TwilioSmsAdapter(
            settings.twilio_account_sid,
            settings.twilio_auth_token.get_secret_value(),
            settings.twilio_from_number,
        )
    if settings.smtp_host:
        from .delivery.smtp import SmtpEmailAdapter

        adapters[ChannelType.EMAIL] = SmtpEmailAdapter(
            host=settings.smtp_host,
            from_email=settings.smtp_from_email,
            port=settings.smtp_port,
            username=settings.smtp_username or None,
            password=settings.smtp_password.get_secret_value() or None,
            use_tls=settings.smtp_use_tls,
        )
    if not adapters:
        from .delivery.memory import ConsoleChannelAdapter

        logger.warning("No channel provider configured; using console output")
        console = ConsoleChannelAdapter()
        adapters = {channel: console for channel in ChannelType}
    return adapters


def _retry_policy(config: ResetConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
    )


def build_engine(
    settings: ResetSettings,
    *,
    identity_provider: IIdentityProvider,
    audit_sink: IAuditSink | None = None,
    adapters: dict[ChannelType, IChannelAdapter] | None = None,
    redis_client: Any | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ResetWorkflowEngine:
    """Build a ``ResetWorkflowEngine`` from ``settings``.

    Args:
        settings: Loaded environment settings.
        identity_provider: The account system the engine resets credentials in.
        audit_sink: Audit destination; defaults to a JSON-lines logger, or
            an in-memory sink when ``log_audit_events`` is off.
        adapters: Channel adapters; defaults to ``build_adapters(settings)``.
        redis_client: Pre-built ``redis.asyncio`` client; one is created
            from ``redis_url`` when omitted.
        clock: Time source (tests).

    Example:
        ```python
        settings = ResetSettings()
        engine = build_engine(settings, identity_provider=my_provider)
        ```
    """
    config = settings.to_config()
    limit_policy = RateLimitPolicy.from_config(config)

    if redis_client is None and settings.redis_url:
        from redis.asyncio import from_url

        redis_client = from_url(settings.redis_url)

    if redis_client is not None:
        store: Any = RedisSecretRecordStore(redis_client)
        limiter: Any = RedisRateLimiter(
            redis_client, limit_policy, namespace=config.namespace, clock=clock
        )
    else:
        logger.warning("No redis_url configured; sessions live in process memory")
        store = InMemorySecretRecordStore(clock=clock)
        limiter = InMemoryRateLimiter(limit_policy, clock=clock)

    if audit_sink is None:
        audit_sink = LoggingAuditSink() if settings.log_audit_events else InMemoryAuditSink()

    dispatcher = DeliveryDispatcher(
        adapters if adapters is not None else build_adapters(settings),
        retry_policy=_retry_policy(config),
        timeout=config.call_timeout_seconds,
    )
    return ResetWorkflowEngine(
        config,
        store=store,
        rate_limiter=limiter,
        dispatcher=dispatcher,
        identity_provider=identity_provider,
        audit_sink=audit_sink,
        clock=clock,
    )


__all__: list[str] = ["build_engine", "build_adapters"]
