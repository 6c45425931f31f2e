import asyncio

from live_mosaic.models.photo import PHOTO_COLLECTION
from live_mosaic.services.state_restorer import StateRestorer
from live_mosaic.services.tile_assigner import TileAssigner
from live_mosaic.services.tile_canvas import TileCanvas

TOTAL_TILES = 10


async def add_photo(store, blob_ref, timestamp, tile_index=None):
    fields = {"blobRef": blob_ref, "timestamp": timestamp, "used": tile_index is not None}
    if tile_index is not None:
        fields["tileIndex"] = tile_index
    return await store.create(PHOTO_COLLECTION, fields)


def test_replays_committed_photos_in_timestamp_order(metadata_store):
    base_order = TileAssigner.create(TOTAL_TILES, seed=1).tile_order

    async def scenario():
        second = await add_photo(metadata_store, "b", 20, tile_index=7)
        first = await add_photo(metadata_store, "a", 10, tile_index=2)
        await add_photo(metadata_store, "queued", 5)

        assigner = TileAssigner()
        canvas = TileCanvas(TOTAL_TILES)
        report = await StateRestorer(metadata_store, base_order).restore(assigner, canvas)

        assert report.restored == 2
        assert report.assignments == {2: first, 7: second}
        assert assigner.current_index == 2
        assert assigner.tile_order[:2] == [2, 7]
        assert sorted(assigner.tile_order) == list(range(TOTAL_TILES))
        assert canvas.snapshot() == {2: "a", 7: "b"}
        assert assigner.assign_next() not in (2, 7)

    asyncio.run(scenario())


def test_restore_is_idempotent(metadata_store):
    base_order = TileAssigner.create(TOTAL_TILES, seed=5).tile_order

    async def scenario():
        for timestamp, tile_index in enumerate([4, 0, 9]):
            await add_photo(metadata_store, f"photo-{timestamp}", timestamp, tile_index=tile_index)
        restorer = StateRestorer(metadata_store, base_order)
        assigner = TileAssigner()
        canvas = TileCanvas(TOTAL_TILES)

        await restorer.restore(assigner, canvas)
        first = (assigner.current_index, list(assigner.tile_order), canvas.snapshot())
        await restorer.restore(assigner, canvas)
        second = (assigner.current_index, list(assigner.tile_order), canvas.snapshot())

        fresh_assigner = TileAssigner()
        fresh_canvas = TileCanvas(TOTAL_TILES)
        await restorer.restore(fresh_assigner, fresh_canvas)
        fresh = (fresh_assigner.current_index, list(fresh_assigner.tile_order), fresh_canvas.snapshot())

        assert first == second == fresh
        assert first[0] == 3

    asyncio.run(scenario())


def test_stale_and_conflicting_records_are_skipped(metadata_store):
    base_order = list(range(TOTAL_TILES))

    async def scenario():
        owner = await add_photo(metadata_store, "owner", 1, tile_index=4)
        duplicate = await add_photo(metadata_store, "duplicate", 2, tile_index=4)
        out_of_range = await add_photo(metadata_store, "old-grid", 3, tile_index=TOTAL_TILES + 2)
        no_tile = await metadata_store.create(PHOTO_COLLECTION, {"blobRef": "broken", "timestamp": 4, "used": True})

        assigner = TileAssigner()
        canvas = TileCanvas(TOTAL_TILES)
        report = await StateRestorer(metadata_store, base_order).restore(assigner, canvas)

        assert report.assignments == {4: owner}
        assert report.conflicting == [duplicate]
        assert report.stale == [out_of_range, no_tile]
        assert assigner.current_index == 1
        assert canvas.snapshot() == {4: "owner"}

    asyncio.run(scenario())


def test_empty_store_resets_to_base_order(metadata_store):
    base_order = TileAssigner.create(TOTAL_TILES, seed=9).tile_order

    async def scenario():
        assigner = TileAssigner.create(TOTAL_TILES, seed=1)
        assigner.assign_next()
        report = await StateRestorer(metadata_store, base_order).restore(assigner, TileCanvas(TOTAL_TILES))
        assert report.restored == 0
        assert assigner.current_index == 0
        assert assigner.tile_order == base_order

    asyncio.run(scenario())


def test_malformed_records_do_not_abort_restore(metadata_store):
    async def scenario():
        broken = await metadata_store.create(PHOTO_COLLECTION, {"timestamp": "yesterday", "used": True, "tileIndex": 1})
        valid = await add_photo(metadata_store, "valid", 2, tile_index=3)

        assigner = TileAssigner()
        restorer = StateRestorer(metadata_store, list(range(TOTAL_TILES)))
        report = await restorer.restore(assigner, TileCanvas(TOTAL_TILES))
        assert report.assignments == {3: valid}
        assert report.stale == [broken]
        assert assigner.current_index == 1

    asyncio.run(scenario())
