import asyncio

import pytest

from live_mosaic.exceptions import TransientIOError
from live_mosaic.models.mosaic_state import (
    STATUS_CONNECTION_LOST,
    STATUS_DEGRADED,
    STATUS_NEW_PHOTO,
    BridgeState,
)
from live_mosaic.services.notification_bridge import NotificationBridge, Poller, RetryPolicy
from live_mosaic.services.pubsub import CAMERA_CHANNEL, PHOTO_UPLOADED_EVENT, LocalPubSub

FAST_RETRY = RetryPolicy(max_attempts=3, delay=0.001, backoff=2.0)


class UnreachablePubSub(LocalPubSub):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.subscribe_calls = 0

    async def subscribe(self, channel, event, handler):
        self.subscribe_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransientIOError("push service unreachable")
        return await super().subscribe(channel, event, handler)


class WakeCounter:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


def test_retry_policy_backs_off():
    policy = RetryPolicy(max_attempts=4, delay=0.5, backoff=3.0)
    assert [policy.delay_for(attempt) for attempt in (1, 2, 3)] == [0.5, 1.5, 4.5]


def test_event_wakes_reconciler():
    async def scenario():
        pubsub = LocalPubSub()
        wake = WakeCounter()
        statuses = []
        bridge = NotificationBridge(pubsub, wake, policy=FAST_RETRY, on_status=statuses.append)
        assert await bridge.start() is True
        assert bridge.connected
        assert bridge.attempts == 1

        await pubsub.publish(CAMERA_CHANNEL, PHOTO_UPLOADED_EVENT, {"photoId": "ignored"})
        await pubsub.publish(CAMERA_CHANNEL, "other-event", {})
        await pubsub.flush()
        assert wake.calls == 1
        assert statuses == [STATUS_NEW_PHOTO]

    asyncio.run(scenario())


def test_subscription_recovers_after_retry():
    async def scenario():
        pubsub = UnreachablePubSub(failures=2)
        statuses = []
        bridge = NotificationBridge(pubsub, WakeCounter(), policy=FAST_RETRY, on_status=statuses.append)
        assert await bridge.start() is True
        assert bridge.attempts == 3
        assert bridge.state == BridgeState.CONNECTED
        assert statuses == [STATUS_CONNECTION_LOST, STATUS_CONNECTION_LOST]
        assert pubsub.subscriber_count(CAMERA_CHANNEL, PHOTO_UPLOADED_EVENT) == 1

    asyncio.run(scenario())


def test_gives_up_after_max_attempts():
    async def scenario():
        pubsub = UnreachablePubSub(failures=10)
        statuses = []
        bridge = NotificationBridge(pubsub, WakeCounter(), policy=FAST_RETRY, on_status=statuses.append)
        assert await bridge.start() is False
        assert pubsub.subscribe_calls == 3
        assert bridge.state == BridgeState.DEGRADED
        assert not bridge.connected
        assert statuses[-1] == STATUS_DEGRADED

    asyncio.run(scenario())


def test_teardown_unsubscribes():
    async def scenario():
        pubsub = LocalPubSub()
        wake = WakeCounter()
        bridge = NotificationBridge(pubsub, wake, policy=FAST_RETRY)
        await bridge.start()
        bridge.teardown()
        assert bridge.state == BridgeState.CLOSED
        assert pubsub.subscriber_count(CAMERA_CHANNEL, PHOTO_UPLOADED_EVENT) == 0

        await pubsub.publish(CAMERA_CHANNEL, PHOTO_UPLOADED_EVENT, {})
        await pubsub.flush()
        assert wake.calls == 0

    asyncio.run(scenario())


def test_teardown_cancels_pending_retry():
    async def scenario():
        pubsub = UnreachablePubSub(failures=10)
        bridge = NotificationBridge(pubsub, WakeCounter(), policy=RetryPolicy(max_attempts=3, delay=60))
        task = bridge.start()
        await asyncio.sleep(0)
        assert bridge.attempts == 1
        bridge.teardown()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert pubsub.subscribe_calls == 1
        assert bridge.state == BridgeState.CLOSED

    asyncio.run(scenario())


def test_poller_wakes_periodically():
    async def scenario():
        wake = WakeCounter()
        poller = Poller(wake, 0.01)
        poller.start()
        assert poller.running
        await asyncio.sleep(0.1)
        poller.stop()
        assert not poller.running
        calls = wake.calls
        assert calls >= 2
        await asyncio.sleep(0.05)
        assert wake.calls == calls

    asyncio.run(scenario())


def test_poller_disabled_without_interval():
    async def scenario():
        poller = Poller(WakeCounter(), 0)
        assert poller.start() is None
        assert not poller.running

    asyncio.run(scenario())


def test_poller_survives_failing_wake():
    async def scenario():
        calls = []

        async def wake():
            calls.append(1)
            if len(calls) == 1:
                raise ValueError("broken photo queue")

        poller = Poller(wake, 0.01)
        poller.start()
        await asyncio.sleep(0.1)
        assert poller.running
        poller.stop()
        assert len(calls) >= 2

    asyncio.run(scenario())
