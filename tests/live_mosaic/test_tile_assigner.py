import pytest

from live_mosaic.exceptions import CapacityExceeded
from live_mosaic.services.tile_assigner import TileAssigner


@pytest.mark.parametrize("total_tiles", [1, 2, 7, 192])
def test_every_tile_is_assigned_exactly_once(total_tiles):
    assigner = TileAssigner.create(total_tiles)
    tiles = [assigner.assign_next() for _ in range(total_tiles)]
    assert sorted(tiles) == list(range(total_tiles))
    with pytest.raises(CapacityExceeded):
        assigner.assign_next()


def test_empty_grid_is_full_right_away():
    assigner = TileAssigner.create(0)
    with pytest.raises(CapacityExceeded):
        assigner.assign_next()


def test_seed_makes_order_reproducible():
    assert TileAssigner.create(50, seed=42).tile_order == TileAssigner.create(50, seed=42).tile_order
    assert TileAssigner.create(50, seed=42).tile_order != TileAssigner.create(50, seed=43).tile_order


def test_order_is_shuffled():
    # probability of the identity permutation is 1/100!
    assert TileAssigner.create(100, seed=1).tile_order != list(range(100))


def test_resume_at_keeps_persisted_order():
    order = [3, 0, 2, 1]
    assigner = TileAssigner()
    assigner.resume_at(order, 2)
    assert assigner.remaining == 2
    assert assigner.assign_next() == 2
    assert assigner.assign_next() == 1
    with pytest.raises(CapacityExceeded):
        assigner.assign_next()


@pytest.mark.parametrize("order,current_index", [([0, 0, 1], 0), ([1, 2, 3], 0), ([0, 1, 2], 4), ([0, 1], -1)])
def test_resume_at_rejects_invalid_state(order, current_index):
    with pytest.raises(ValueError):
        TileAssigner().resume_at(order, current_index)


def test_claim_moves_tile_to_front_of_remaining_window():
    assigner = TileAssigner()
    assigner.resume_at([4, 1, 3, 0, 2], 0)
    assert assigner.claim(0) is True
    assert assigner.claim(4) is True
    assert assigner.tile_order[:2] == [0, 4]
    assert assigner.current_index == 2
    assert assigner.claim(0) is False
    assert assigner.current_index == 2
    assert sorted(assigner.tile_order) == [0, 1, 2, 3, 4]
    assert {assigner.assign_next() for _ in range(3)} == {1, 2, 3}


def test_claim_rejects_unknown_tile():
    assigner = TileAssigner.create(3)
    with pytest.raises(ValueError):
        assigner.claim(3)


def test_rewind_returns_last_tile():
    assigner = TileAssigner.create(5, seed=3)
    first = assigner.assign_next()
    assert assigner.rewind() == first
    assert assigner.current_index == 0
    assert assigner.assign_next() == first
    with pytest.raises(ValueError):
        TileAssigner.create(5).rewind()
