from datetime import datetime, timedelta, timezone

import pytest

from tripstory.schemas.photo import PhotoRecord
from tripstory.services.clustering import assign_day_numbers, cluster_by_day


@pytest.mark.asyncio
async def test_days_numbered_by_date_not_upload_order(store, add_photo):
    trip = await store.create_trip("Italy")
    await add_photo(trip.id, "rome.jpg", captured_at=datetime(2024, 5, 3, 10, 0))
    await add_photo(trip.id, "florence.jpg", captured_at=datetime(2024, 5, 1, 18, 30))
    await add_photo(trip.id, "venice.jpg", captured_at=datetime(2024, 5, 2, 9, 15))
    await add_photo(trip.id, "florence-night.jpg", captured_at=datetime(2024, 5, 1, 23, 45))

    photos = await store.list_photos(trip.id)
    buckets = await assign_day_numbers(store, trip.id, photos)

    assert [(b.day_number, b.date.isoformat()) for b in buckets] == [
        (1, "2024-05-01"), (2, "2024-05-02"), (3, "2024-05-03"),
    ]
    days = {p.filename: p.day_number for p in await store.list_photos(trip.id)}
    assert days == {"rome.jpg": 3, "florence.jpg": 1, "venice.jpg": 2, "florence-night.jpg": 1}


@pytest.mark.asyncio
async def test_clustering_is_idempotent(store, add_photo):
    trip = await store.create_trip("Italy")
    for day in (4, 2, 2, 9):
        await add_photo(trip.id, f"d{day}.jpg", captured_at=datetime(2024, 5, day, 12))

    await assign_day_numbers(store, trip.id, await store.list_photos(trip.id))
    first = {p.id: p.day_number for p in await store.list_photos(trip.id)}
    await assign_day_numbers(store, trip.id, await store.list_photos(trip.id))
    second = {p.id: p.day_number for p in await store.list_photos(trip.id)}

    assert first == second
    assert sorted(set(first.values())) == [1, 2, 3]


@pytest.mark.asyncio
async def test_photos_without_timestamp_are_unassigned(store, add_photo):
    trip = await store.create_trip("Italy")
    dated = await add_photo(trip.id, "dated.jpg", captured_at=datetime(2024, 5, 1, 12))
    undated = await add_photo(trip.id, "undated.jpg")
    await store.set_day_number(undated.id, 7)

    await assign_day_numbers(store, trip.id, await store.list_photos(trip.id))

    assert (await store.get_photo(dated.id)).day_number == 1
    assert (await store.get_photo(undated.id)).day_number is None


@pytest.mark.asyncio
async def test_reclustering_renumbers_after_photo_changes(store, add_photo):
    trip = await store.create_trip("Italy")
    late = await add_photo(trip.id, "late.jpg", captured_at=datetime(2024, 5, 5, 12))
    await assign_day_numbers(store, trip.id, await store.list_photos(trip.id))
    assert (await store.get_photo(late.id)).day_number == 1

    await add_photo(trip.id, "early.jpg", captured_at=datetime(2024, 5, 4, 12))
    await assign_day_numbers(store, trip.id, await store.list_photos(trip.id))

    assert (await store.get_photo(late.id)).day_number == 2


def test_wall_clock_date_ignores_offsets():
    tokyo = timezone(timedelta(hours=9))
    photos = [
        PhotoRecord(id="a", trip_id="t", filename="a", file_path="a", captured_at=datetime(2024, 5, 1, 23, 30, tzinfo=tokyo)),
        PhotoRecord(id="b", trip_id="t", filename="b", file_path="b", captured_at=datetime(2024, 5, 2, 0, 30)),
    ]

    buckets = cluster_by_day(photos)

    assert [b.date.isoformat() for b in buckets] == ["2024-05-01", "2024-05-02"]
    assert [p.id for p in buckets[0].photos] == ["a"]


def test_empty_input_has_no_days():
    assert cluster_by_day([]) == []
