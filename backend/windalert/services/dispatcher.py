"""Notification dispatcher: fans one alert out to a subscriber's channels.

Channels are independent. Each adapter call is isolated so an exception or a
provider outage on one channel only turns that channel's flag to False. A
partially delivered alert is a final outcome; nothing is retried or rolled
back here.
"""

import asyncio
import logging
from typing import Mapping, Sequence

from ..config import Channel, PushProvider, Settings
from ..schemas.alerts import AlertEvent, BulkResult, DispatchResult
from ..schemas.subscriber import Subscriber
from .channels.base import ChannelAdapter
from .channels.email import ResendEmailAdapter
from .channels.push import OneSignalPushAdapter, WebPushAdapter
from .channels.sms import TwilioSmsAdapter

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 1.0


def build_adapters(settings: Settings) -> dict[Channel, ChannelAdapter]:
    """Construct one adapter per server-enabled channel."""
    adapters: dict[Channel, ChannelAdapter] = {}
    timeout = settings.weather_timeout_sec
    for channel in settings.alert_channels:
        if channel == Channel.EMAIL:
            adapters[channel] = ResendEmailAdapter(
                api_key=settings.resend_api_key,
                from_address=settings.email_from_address,
                from_name=settings.email_from_name,
                app_url=settings.app_url,
                timeout=timeout,
            )
        elif channel == Channel.SMS:
            adapters[channel] = TwilioSmsAdapter(
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token,
                from_number=settings.twilio_phone_from,
                timeout=timeout,
            )
        elif settings.push_provider == PushProvider.WEBPUSH:
            adapters[channel] = WebPushAdapter(
                vapid_private_key=settings.vapid_private_key,
                vapid_subject=settings.vapid_subject,
                app_url=settings.app_url,
                timeout=timeout,
            )
        else:
            adapters[channel] = OneSignalPushAdapter(
                app_id=settings.onesignal_app_id,
                api_key=settings.onesignal_rest_api_key,
                app_url=settings.app_url,
                timeout=timeout,
            )
    return adapters


async def _send_one(adapter: ChannelAdapter, contact: str, event: AlertEvent) -> bool:
    try:
        content = adapter.render(event)
        return bool(await adapter.send(contact, content))
    except Exception as exc:
        logger.error(
            "%s channel raised for subscriber %s: %s",
            adapter.channel.value, event.subscriber_id, exc, exc_info=True,
        )
        return False


async def dispatch(
    event: AlertEvent,
    subscriber: Subscriber,
    adapters: Mapping[Channel, ChannelAdapter],
) -> DispatchResult:
    """Send event on every enabled channel that has contact info and an adapter."""
    channels: list[Channel] = []
    sends = []
    for channel in subscriber.enabled_channels:
        contact = subscriber.contact_for(channel)
        adapter = adapters.get(channel)
        if not contact:
            logger.debug("Subscriber %s has no %s contact", subscriber.id, channel.value)
            continue
        if adapter is None:
            logger.debug("Channel %s not enabled on this server", channel.value)
            continue
        channels.append(channel)
        sends.append(_send_one(adapter, contact, event))

    delivered = await asyncio.gather(*sends)
    result = DispatchResult(**{c.value: ok for c, ok in zip(channels, delivered)})
    logger.info(
        "Dispatched %s alert to subscriber %s: email=%s sms=%s push=%s",
        event.level.value, subscriber.id, result.email, result.sms, result.push,
    )
    return result


async def send_bulk_alerts(
    jobs: Sequence[tuple[AlertEvent, Subscriber]],
    adapters: Mapping[Channel, ChannelAdapter],
    batch_size: int = DEFAULT_BATCH_SIZE,
    batch_delay: float = DEFAULT_BATCH_DELAY,
) -> BulkResult:
    """Dispatch many alerts in fixed-size batches with a pause between batches.

    Every batch settles completely before the next starts; a subscriber whose
    dispatch raises, or whose channels all failed, counts as failed without
    affecting the others.
    """
    batch_size = max(batch_size, 1)
    bulk = BulkResult()
    for start in range(0, len(jobs), batch_size):
        batch = jobs[start:start + batch_size]
        settled = await asyncio.gather(
            *(dispatch(event, subscriber, adapters) for event, subscriber in batch),
            return_exceptions=True,
        )
        for (event, subscriber), outcome in zip(batch, settled):
            if isinstance(outcome, BaseException):
                logger.error("Bulk alert to subscriber %s failed: %s", subscriber.id, outcome)
                bulk.results[subscriber.id] = DispatchResult()
                bulk.failed += 1
                continue
            bulk.results[subscriber.id] = outcome
            if outcome.any_sent:
                bulk.success += 1
            else:
                bulk.failed += 1

        if start + batch_size < len(jobs) and batch_delay > 0:
            await asyncio.sleep(batch_delay)

    logger.info("Bulk alerts: %d delivered, %d failed", bulk.success, bulk.failed)
    return bulk
