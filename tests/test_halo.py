"""Tests for halo exchangers."""

import numpy as np
import pytest
from mpi4py import MPI
from Heat2D import partition_grid
from Heat2D.mpi import (
    DatatypeHaloExchanger,
    NumpyHaloExchanger,
    PersistentHaloExchanger,
    create_halo_exchanger,
)
from Heat2D.mpi.halo import OPPOSITE, RECV_SLICES, SEND_SLICES

ISOLATED = {"up": None, "down": None, "left": None, "right": None}
SELF_LOOP = {"up": 0, "down": 0, "left": 0, "right": 0}


class FakeRequest:
    def __init__(self, on_wait=None):
        self.on_wait = on_wait

    def Wait(self):
        if self.on_wait is not None:
            self.on_wait()


class FakeComm:
    """Point-to-point stand-in: ranks of one process share a message wire."""

    def __init__(self, rank, wire):
        self.rank = rank
        self.wire = wire
        self.posted = []

    def Isend(self, buf, dest, tag):
        self.posted.append(("send", dest, tag, len(buf)))
        self.wire[(self.rank, dest, tag)] = np.array(buf, copy=True)
        return FakeRequest()

    def Irecv(self, buf, source, tag):
        self.posted.append(("recv", source, tag, len(buf)))

        def deliver():
            np.copyto(buf, self.wire.pop((source, self.rank, tag)))

        return FakeRequest(deliver)


@pytest.fixture
def fake_waitall(monkeypatch):
    from Heat2D.mpi import halo

    monkeypatch.setattr(
        halo.HaloExchanger, "_waitall", staticmethod(lambda reqs: [r.Wait() for r in reqs])
    )


def numbered_block(topology, rank):
    """Halo-padded block whose owned cells encode rank and position."""
    block = np.full(topology.halo_shape, -1.0)
    rows, columns = topology.local_shape
    block[1:-1, 1:-1] = rank * 1000 + np.arange(rows * columns).reshape(rows, columns)
    return block


class TestNumpyHaloExchanger:
    """Packed-buffer exchange over a fake two-rank wire."""

    @pytest.mark.parametrize("NX,NY", [(6, 4), (4, 6)])
    def test_two_ranks_swap_edges(self, NX, NY, fake_waitall):
        topo = partition_grid(2, NX, NY)
        wire = {}
        comms = [FakeComm(r, wire) for r in range(2)]
        exchangers = [NumpyHaloExchanger() for _ in range(2)]
        blocks = [numbered_block(topo, r) for r in range(2)]
        for r in range(2):
            exchangers[r].setup(topo.local_shape, topo.neighbors(r), comms[r])

        for r in range(2):
            exchangers[r].post(blocks[r])
        for r in range(2):
            exchangers[r].wait_receives()
        for r in range(2):
            exchangers[r].wait_sends()

        assert wire == {}
        for r in range(2):
            for d, n in topo.neighbors(r).items():
                if n is None:
                    assert np.all(blocks[r][RECV_SLICES[d]] == -1.0)
                else:
                    expected = numbered_block(topo, n)[SEND_SLICES[OPPOSITE[d]]]
                    assert np.array_equal(blocks[r][RECV_SLICES[d]], expected)

    def test_column_is_one_message(self, fake_waitall):
        """Left/right transfers move all rows in a single send."""
        topo = partition_grid(2, 4, 6)  # 1 x 2, blocks 4 x 3
        comm = FakeComm(0, {})
        exchanger = NumpyHaloExchanger()
        exchanger.setup(topo.local_shape, topo.neighbors(0), comm)

        exchanger.post(numbered_block(topo, 0))

        sends = [p for p in comm.posted if p[0] == "send"]
        assert sends == [("send", 1, 13, 4)]

    def test_isolated_posts_nothing(self, fake_waitall):
        comm = FakeComm(0, {})
        exchanger = NumpyHaloExchanger()
        exchanger.setup((4, 4), ISOLATED, comm)
        block = np.ones((6, 6))

        exchanger.exchange(block)

        assert comm.posted == []
        assert np.all(block == 1.0)


@pytest.mark.parametrize("kind", ["numpy", "custom", "persistent"])
class TestSelfLoopExchange:
    """Real MPI on one rank: every neighbor is the rank itself (periodic wrap)."""

    def test_halo_receives_opposite_edge(self, kind):
        topo = partition_grid(1, 5, 4)
        exchanger = create_halo_exchanger(kind)
        exchanger.setup(topo.local_shape, SELF_LOOP, MPI.COMM_SELF)
        block = numbered_block(topo, 0)

        exchanger.exchange(block)
        exchanger.free()

        assert np.array_equal(block[0, 1:-1], block[-2, 1:-1])
        assert np.array_equal(block[-1, 1:-1], block[1, 1:-1])
        assert np.array_equal(block[1:-1, 0], block[1:-1, -2])
        assert np.array_equal(block[1:-1, -1], block[1:-1, 1])

    def test_corners_not_transferred(self, kind):
        topo = partition_grid(1, 4, 4)
        exchanger = create_halo_exchanger(kind)
        exchanger.setup(topo.local_shape, SELF_LOOP, MPI.COMM_SELF)
        block = numbered_block(topo, 0)

        exchanger.exchange(block)
        exchanger.free()

        for corner in [(0, 0), (0, -1), (-1, 0), (-1, -1)]:
            assert block[corner] == -1.0

    def test_interior_unchanged(self, kind):
        topo = partition_grid(1, 6, 6)
        exchanger = create_halo_exchanger(kind)
        exchanger.setup(topo.local_shape, SELF_LOOP, MPI.COMM_SELF)
        block = numbered_block(topo, 0)
        before = block[1:-1, 1:-1].copy()

        exchanger.post(block)
        exchanger.wait_receives()
        exchanger.wait_sends()
        exchanger.free()

        assert np.array_equal(block[1:-1, 1:-1], before)

    def test_halo_size(self, kind):
        exchanger = create_halo_exchanger(kind)
        exchanger.setup((3, 5), SELF_LOOP, MPI.COMM_SELF)
        size = exchanger.halo_size_bytes()
        exchanger.free()

        assert size == (5 + 5 + 3 + 3) * 8 * 2


class TestPersistentRequests:
    """Persistent requests are created once per generation buffer."""

    def test_requests_cached_per_buffer(self):
        exchanger = PersistentHaloExchanger()
        exchanger.setup((4, 4), SELF_LOOP, MPI.COMM_SELF)
        generations = [np.zeros((6, 6)), np.zeros((6, 6))]

        for it in range(4):
            exchanger.exchange(generations[it % 2])

        assert len(exchanger._persistent) == 2
        exchanger.free()
        assert len(exchanger._persistent) == 0

    def test_repeated_exchange_refreshes_halo(self):
        exchanger = PersistentHaloExchanger()
        exchanger.setup((3, 3), SELF_LOOP, MPI.COMM_SELF)
        block = np.zeros((5, 5))

        block[1:-1, 1:-1] = 1.0
        exchanger.exchange(block)
        block[1:-1, 1:-1] = 2.0
        exchanger.exchange(block)
        exchanger.free()

        assert np.all(block[0, 1:-1] == 2.0)
        assert np.all(block[1:-1, -1] == 2.0)


def test_datatype_exchanger_rejects_wrong_shape():
    exchanger = DatatypeHaloExchanger()
    exchanger.setup((4, 4), SELF_LOOP, MPI.COMM_SELF)
    with pytest.raises(ValueError):
        exchanger.post(np.zeros((5, 6)))
    exchanger.free()


def test_unknown_exchanger():
    with pytest.raises(ValueError):
        create_halo_exchanger("smoke-signals")
