"""MPI domain decomposition and communication.

This package provides:
- DistributedGrid: Unified interface for parallel grids
- partition_grid / ProcessTopology: Block grid shape and neighbors
- CartesianDecomposition: Shared topology with MPI Cartesian communicator
- BlockTransport: Scatter/gather strategies (numpy/datatype)
- HaloExchanger: Strategies for halo exchange (numpy/datatype/persistent)
- DistributedField: Double-buffered local block
"""

from .decomposition import CartesianDecomposition, ProcessTopology, partition_grid, is_prime
from .field import DistributedField
from .grid import DistributedGrid
from .halo import (
    HaloExchanger,
    NumpyHaloExchanger,
    DatatypeHaloExchanger,
    PersistentHaloExchanger,
    create_halo_exchanger,
)
from .transport import (
    BlockTransport,
    NumpyBlockTransport,
    DatatypeBlockTransport,
    create_block_transport,
    split_field,
    assemble_field,
)
from ..datastructures import RankGeometry

__all__ = [
    "DistributedGrid",
    "DistributedField",
    "CartesianDecomposition",
    "ProcessTopology",
    "partition_grid",
    "is_prime",
    "HaloExchanger",
    "NumpyHaloExchanger",
    "DatatypeHaloExchanger",
    "PersistentHaloExchanger",
    "create_halo_exchanger",
    "BlockTransport",
    "NumpyBlockTransport",
    "DatatypeBlockTransport",
    "create_block_transport",
    "split_field",
    "assemble_field",
    "RankGeometry",
]
