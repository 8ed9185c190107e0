"""Tests for block decomposition logic."""

import numpy as np
import pytest
from Heat2D import ConfigurationError, ProcessTopology, partition_grid
from Heat2D.mpi import is_prime

OPPOSITES = {"up": "down", "down": "up", "left": "right", "right": "left"}

VALID_CASES = [
    (8, 8, 1),
    (8, 8, 2),
    (8, 8, 4),
    (12, 18, 6),
    (16, 16, 8),
    (18, 12, 9),
    (256, 320, 16),
    (24, 36, 12),
    (30, 25, 10),
    (4, 36, 4),
]


class TestPartitionGrid:
    """Tests for the block grid shape and block sizes."""

    @pytest.mark.parametrize("NX,NY,W", VALID_CASES)
    def test_exact_division(self, NX, NY, W):
        """Block grid uses every worker and divides the domain exactly."""
        topo = partition_grid(W, NX, NY)

        assert topo.xdim * topo.ydim == W
        assert topo.rows * topo.xdim == NX
        assert topo.columns * topo.ydim == NY

    @pytest.mark.parametrize("NX,NY,W", VALID_CASES)
    def test_full_coverage_no_overlaps(self, NX, NY, W):
        """Each global cell owned by exactly one rank."""
        topo = partition_grid(W, NX, NY)

        owners = np.zeros((NX, NY), dtype=int)
        for rank in range(W):
            owners[topo.block_bounds(rank)] += 1

        assert np.all(owners == 1)

    @pytest.mark.parametrize("NX,NY,W", VALID_CASES)
    def test_neighbor_reciprocity(self, NX, NY, W):
        """If A's right neighbor is B, then B's left neighbor is A."""
        topo = partition_grid(W, NX, NY)

        for rank in range(W):
            for direction, neighbor in topo.neighbors(rank).items():
                if neighbor is not None:
                    assert topo.neighbors(neighbor)[OPPOSITES[direction]] == rank

    @pytest.mark.parametrize(
        "W,expected",
        [(1, (1, 1)), (2, (2, 1)), (4, (2, 2)), (6, (3, 2)), (8, (2, 4)), (9, (3, 3)), (12, (4, 3))],
    )
    def test_factor_scan_on_square_domain(self, W, expected):
        """Divisor scan starts at floor(sqrt(W)) + 1 and counts down."""
        topo = partition_grid(W, 72, 72)
        assert topo.dims == expected

    def test_swap_on_tall_domain(self):
        """NY > NX flips a grid with fewer owner columns than rows."""
        topo = partition_grid(6, 12, 24)
        assert topo.dims == (2, 3)
        assert topo.local_shape == (6, 8)

    def test_no_swap_on_wide_domain(self):
        topo = partition_grid(6, 24, 12)
        assert topo.dims == (3, 2)

    def test_two_owners_share_an_edge(self):
        """NX = NY = 8 with two owners: a 2 x 1 grid of 4 x 8 blocks."""
        topo = partition_grid(2, 8, 8)

        assert topo.dims in [(2, 1), (1, 2)]
        assert sorted(topo.local_shape) == [4, 8]
        if topo.dims == (2, 1):
            assert topo.neighbors(0)["down"] == 1
            assert topo.neighbors(1)["up"] == 0
        else:
            assert topo.neighbors(0)["right"] == 1
            assert topo.neighbors(1)["left"] == 0

    def test_default_problem_size(self):
        """256 x 320 on 16 workers."""
        topo = partition_grid(16, 256, 320)
        assert topo.dims == (4, 4)
        assert topo.local_shape == (64, 80)


class TestNeighbors:
    """Tests for row-major neighbor derivation."""

    def test_single_owner_is_isolated(self):
        topo = partition_grid(1, 4, 4)
        assert topo.neighbors(0) == {"up": None, "down": None, "left": None, "right": None}
        assert topo.geometry(0).n_neighbors == 0

    def test_interior_owner_has_four_neighbors(self):
        topo = partition_grid(9, 9, 9)  # 3 x 3
        info = topo.geometry(4)

        assert info.coords == (1, 1)
        assert info.neighbors == {"up": 1, "down": 7, "left": 3, "right": 5}
        assert info.n_neighbors == 4

    def test_corner_owner(self):
        topo = partition_grid(9, 9, 9)
        assert topo.neighbors(8) == {"up": 5, "down": None, "left": 7, "right": None}

    def test_geometry_bounds(self):
        topo = partition_grid(4, 8, 12)  # 2 x 2, blocks 4 x 6
        info = topo.geometry(3)

        assert info.global_start == (4, 6)
        assert info.global_end == (8, 12)
        assert info.halo_shape == (6, 8)

    def test_rank_out_of_range(self):
        topo = partition_grid(4, 8, 8)
        with pytest.raises(ValueError):
            topo.coords(4)


class TestConfigurationErrors:
    """Degenerate decompositions are rejected before anything is allocated."""

    @pytest.mark.parametrize("W", [3, 5, 7, 11, 13])
    def test_prime_worker_count(self, W):
        with pytest.raises(ConfigurationError, match="prime"):
            partition_grid(W, 7 * 13 * 11 * 5 * 3, 16)

    def test_seven_workers(self):
        with pytest.raises(ConfigurationError):
            partition_grid(7, 14, 14)

    def test_indivisible_cell_count(self):
        with pytest.raises(ConfigurationError, match="not divisible"):
            partition_grid(4, 5, 5)

    def test_block_grid_does_not_divide_domain(self):
        """Cell count divides, but the chosen 2 x 2 grid does not."""
        with pytest.raises(ConfigurationError, match="does not divide"):
            partition_grid(4, 8, 3)

    def test_non_positive_workers(self):
        with pytest.raises(ConfigurationError):
            partition_grid(0, 8, 8)

    def test_error_carries_exit_status(self):
        with pytest.raises(ConfigurationError) as excinfo:
            partition_grid(7, 14, 14)
        assert excinfo.value.exit_status == 22
        assert isinstance(excinfo.value, ValueError)


class TestIsPrime:
    @pytest.mark.parametrize("n,expected", [(1, False), (2, True), (3, True), (4, False), (9, False), (25, False), (29, True)])
    def test_values(self, n, expected):
        assert is_prime(n) is expected


def test_topology_is_immutable():
    topo = partition_grid(4, 8, 8)
    assert isinstance(topo, ProcessTopology)
    with pytest.raises(AttributeError):
        topo.rows = 3
