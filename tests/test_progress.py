import asyncio
import json

import pytest

from tripstory.schemas.events import progress_event, status_event
from tripstory.schemas.status import PipelineStep, ProcessingStatus
from tripstory.services.progress import ProgressBus, QueueSubscriber, SubscriberGone


def test_subscribe_yields_connected_then_current_status(subscriber_factory):
    bus = ProgressBus()
    subscriber = subscriber_factory()

    bus.subscribe("trip-1", subscriber, ProcessingStatus.NOT_STARTED)

    assert subscriber.types == ["connected", "status"]
    assert subscriber.events[0].payload() == {
        "type": "connected",
        "data": {"tripId": "trip-1", "message": "Connected to trip status stream"},
    }
    assert subscriber.events[1].payload() == {"type": "status", "data": {"status": "not_started"}}


def test_late_subscriber_gets_no_replay(subscriber_factory):
    bus = ProgressBus()
    early = subscriber_factory()
    bus.subscribe("trip-1", early, ProcessingStatus.PENDING)
    bus.publish("trip-1", status_event(ProcessingStatus.PROCESSING, "Processing started"))

    late = subscriber_factory()
    bus.subscribe("trip-1", late, ProcessingStatus.PROCESSING)

    assert early.types == ["connected", "status", "status"]
    assert late.types == ["connected", "status"]


def test_publish_is_scoped_to_trip(subscriber_factory):
    bus = ProgressBus()
    a, b = subscriber_factory(), subscriber_factory()
    bus.subscribe("trip-a", a, ProcessingStatus.PENDING)
    bus.subscribe("trip-b", b, ProcessingStatus.PENDING)

    delivered = bus.publish("trip-a", progress_event(PipelineStep.CLUSTERING, "Clustering photos by day"))

    assert delivered == 1
    assert a.types[-1] == "progress"
    assert b.types == ["connected", "status"]


def test_publish_without_subscribers_is_noop():
    assert ProgressBus().publish("nobody", status_event(ProcessingStatus.COMPLETED)) == 0


def test_failed_write_prunes_subscriber(subscriber_factory):
    bus = ProgressBus()
    healthy = subscriber_factory()
    broken = subscriber_factory()
    bus.subscribe("trip-1", healthy, ProcessingStatus.PROCESSING)
    bus.subscribe("trip-1", broken, ProcessingStatus.PROCESSING)
    broken.fail = True

    delivered = bus.publish("trip-1", status_event(ProcessingStatus.COMPLETED))

    assert delivered == 1
    assert bus.subscriber_count("trip-1") == 1
    assert healthy.types[-1] == "status"


def test_subscriber_failing_on_greeting_is_never_registered(subscriber_factory):
    bus = ProgressBus()
    bus.subscribe("trip-1", subscriber_factory(fail=True), ProcessingStatus.PENDING)
    assert bus.subscriber_count("trip-1") == 0


def test_unsubscribe_removes_trip_entry(subscriber_factory):
    bus = ProgressBus()
    subscriber = subscriber_factory()
    bus.subscribe("trip-1", subscriber, ProcessingStatus.PENDING)

    bus.unsubscribe("trip-1", subscriber)
    bus.unsubscribe("trip-1", subscriber)

    assert bus.subscriber_count("trip-1") == 0


def test_status_payload_omits_missing_message():
    assert status_event(ProcessingStatus.FAILED).payload()["data"] == {"status": "failed"}
    event = progress_event(PipelineStep.PHOTOS, "Processed 3/5 photos", total=5, completed=3)
    assert event.payload()["data"] == {"step": "photos", "message": "Processed 3/5 photos", "total": 5, "completed": 3}


def test_sse_frame_format():
    frame = status_event(ProcessingStatus.PROCESSING, "Processing started").to_sse()
    header, data, blank1, blank2 = frame.split("\n")
    assert header == "event: status"
    assert json.loads(data.removeprefix("data: ")) == {"status": "processing", "message": "Processing started"}
    assert blank1 == blank2 == ""


@pytest.mark.asyncio
async def test_queue_subscriber_streams_until_closed():
    bus = ProgressBus()
    subscriber = QueueSubscriber(maxsize=10)
    bus.subscribe("trip-1", subscriber, ProcessingStatus.PENDING)
    bus.publish("trip-1", status_event(ProcessingStatus.PROCESSING))
    bus.close_trip("trip-1")

    received = [event.type async for event in subscriber.events()]

    assert received == ["connected", "status", "status"]
    assert bus.subscriber_count("trip-1") == 0


@pytest.mark.asyncio
async def test_full_queue_drops_subscriber():
    bus = ProgressBus()
    subscriber = QueueSubscriber(maxsize=2)
    bus.subscribe("trip-1", subscriber, ProcessingStatus.PROCESSING)

    delivered = bus.publish("trip-1", progress_event(PipelineStep.PHOTOS, "Processing 3 photos"))

    assert delivered == 0
    assert subscriber.closed
    assert bus.subscriber_count("trip-1") == 0
    with pytest.raises(SubscriberGone):
        subscriber.send(status_event(ProcessingStatus.COMPLETED))
    # the reader still drains what was queued before the drop
    received = await asyncio.wait_for(_collect(subscriber), timeout=1)
    assert received == ["connected", "status"]


async def _collect(subscriber):
    return [event.type async for event in subscriber.events()]
