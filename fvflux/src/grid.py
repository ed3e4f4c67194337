"""
Simplex grids with Voronoi finite volume geometry factors.

Each cell (interval or triangle) is split into sub-control volumes around
its nodes. The geometry of that split is precomputed per cell:
    celledgefactors - |facet| / |edge| weight of each local edge
    cellnodefactors - sub-control-volume measure of each local node
    bfacenodefactors - boundary facet measure attributed to each face node

Region ids (cell regions and boundary face regions) are positive integers.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple


# Local node pairs forming the edges of a cell, edge k opposite local node k
# for triangles.
_LOCAL_EDGES = {
    1: np.array([[0, 1]]),
    2: np.array([[1, 2], [2, 0], [0, 1]]),
}

COORD_SYSTEMS = ('cartesian', 'cylindrical')


@dataclass
class SimplexGrid:
    """
    Unstructured simplex grid in 1D (intervals) or 2D (triangles).

    Attributes:
        coord: Node coordinates (num_nodes, dim)
        cellnodes: Global node indices of each cell (num_cells, dim + 1)
        cellregions: Region id of each cell (num_cells,)
        bfacenodes: Global node indices of each boundary face (num_bfaces, dim)
        bfaceregions: Region id of each boundary face (num_bfaces,)
        coord_system: 'cartesian', or 'cylindrical' (1D radial) weighting
    """
    coord: np.ndarray
    cellnodes: np.ndarray
    cellregions: np.ndarray
    bfacenodes: np.ndarray
    bfaceregions: np.ndarray
    coord_system: str = 'cartesian'

    celledgefactors: np.ndarray = field(init=False, repr=False)
    cellnodefactors: np.ndarray = field(init=False, repr=False)
    bfacenodefactors: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        self.coord = np.asarray(self.coord, dtype=float)
        if self.coord.ndim == 1:
            self.coord = self.coord[:, np.newaxis]
        self.cellnodes = np.asarray(self.cellnodes, dtype=int)
        self.cellregions = np.asarray(self.cellregions, dtype=int)
        self.bfacenodes = np.asarray(self.bfacenodes, dtype=int).reshape(-1, self.dim)
        self.bfaceregions = np.asarray(self.bfaceregions, dtype=int)

        if self.dim not in _LOCAL_EDGES:
            raise ValueError(f"Unsupported grid dimension: {self.dim}")
        if self.cellnodes.shape[1] != self.dim + 1:
            raise ValueError(f"Cells of a {self.dim}D simplex grid need {self.dim + 1} nodes, "
                             f"got {self.cellnodes.shape[1]}")
        if self.cellregions.shape != (self.num_cells,):
            raise ValueError("cellregions must have one entry per cell")
        if self.bfaceregions.shape != (self.bfacenodes.shape[0],):
            raise ValueError("bfaceregions must have one entry per boundary face")
        if np.any(self.cellregions < 1) or np.any(self.bfaceregions < 1):
            raise ValueError("Region ids must be positive integers")
        if self.coord_system not in COORD_SYSTEMS:
            raise ValueError(f"Unknown coordinate system: {self.coord_system}. "
                             f"Options: {', '.join(COORD_SYSTEMS)}")
        if self.coord_system == 'cylindrical' and self.dim != 1:
            raise ValueError("Cylindrical coordinates are only supported for 1D grids")

        if self.dim == 1:
            self._compute_factors_1d()
        else:
            self._compute_factors_2d()

    # --- Topology ---

    @property
    def dim(self) -> int:
        return self.coord.shape[1]

    @property
    def num_nodes(self) -> int:
        return self.coord.shape[0]

    @property
    def num_cells(self) -> int:
        return self.cellnodes.shape[0]

    @property
    def num_bfaces(self) -> int:
        return self.bfacenodes.shape[0]

    @property
    def num_nodes_per_cell(self) -> int:
        return self.dim + 1

    @property
    def num_edges_per_cell(self) -> int:
        return len(_LOCAL_EDGES[self.dim])

    @property
    def local_edge_nodes(self) -> np.ndarray:
        """Local node pairs of the cell edges (num_edges_per_cell, 2)."""
        return _LOCAL_EDGES[self.dim]

    @property
    def num_cellregions(self) -> int:
        return int(self.cellregions.max()) if self.num_cells > 0 else 0

    @property
    def num_bfaceregions(self) -> int:
        return int(self.bfaceregions.max()) if self.num_bfaces > 0 else 0

    def edge_nodes(self, iedge: int, icell: int) -> Tuple[int, int]:
        """Global node indices of local edge iedge of cell icell."""
        k1, k2 = _LOCAL_EDGES[self.dim][iedge]
        return self.cellnodes[icell, k1], self.cellnodes[icell, k2]

    def bregion_nodes(self, region: int) -> np.ndarray:
        """Sorted unique nodes of the boundary faces in a region."""
        return np.unique(self.bfacenodes[self.bfaceregions == region])

    def cellregion_nodes(self, region: int) -> np.ndarray:
        """Sorted unique nodes of the cells in a region."""
        return np.unique(self.cellnodes[self.cellregions == region])

    # --- Geometry factors ---

    def _compute_factors_1d(self):
        x = self.coord[:, 0]
        xa = x[self.cellnodes[:, 0]]
        xb = x[self.cellnodes[:, 1]]
        h = np.abs(xb - xa)
        if np.any(h <= 0.0):
            raise ValueError("Degenerate interval cell (zero length)")

        if self.coord_system == 'cartesian':
            self.celledgefactors = (1.0 / h)[:, np.newaxis]
            self.cellnodefactors = np.column_stack([0.5 * h, 0.5 * h])
            self.bfacenodefactors = np.ones((self.num_bfaces, 1))
        else:
            # Radial weighting: facet at the midpoint has area 2*pi*r_mid
            x_mid = 0.5 * (xa + xb)
            self.celledgefactors = (2.0 * np.pi * np.abs(x_mid) / h)[:, np.newaxis]
            self.cellnodefactors = np.column_stack([
                np.pi * np.abs(x_mid**2 - xa**2),
                np.pi * np.abs(xb**2 - x_mid**2),
            ])
            self.bfacenodefactors = 2.0 * np.pi * np.abs(x[self.bfacenodes])

    def _compute_factors_2d(self):
        p = self.coord[self.cellnodes]  # (num_cells, 3, 2)
        edge_sq = np.zeros((self.num_cells, 3))
        cot = np.zeros((self.num_cells, 3))
        for k, (i, j) in enumerate(_LOCAL_EDGES[2]):
            a = p[:, i] - p[:, k]
            b = p[:, j] - p[:, k]
            cross = np.abs(a[:, 0] * b[:, 1] - a[:, 1] * b[:, 0])
            if np.any(cross <= 0.0):
                raise ValueError("Degenerate triangle cell (zero area)")
            cot[:, k] = np.sum(a * b, axis=1) / cross
            edge_sq[:, k] = np.sum((p[:, j] - p[:, i])**2, axis=1)

        self.celledgefactors = 0.5 * cot

        # Node i touches the two edges opposite the other local nodes
        weighted = 0.25 * edge_sq * self.celledgefactors
        self.cellnodefactors = np.column_stack([
            weighted[:, 1] + weighted[:, 2],
            weighted[:, 2] + weighted[:, 0],
            weighted[:, 0] + weighted[:, 1],
        ])

        seg = self.coord[self.bfacenodes[:, 1]] - self.coord[self.bfacenodes[:, 0]]
        half_length = 0.5 * np.sqrt(np.sum(seg**2, axis=1))
        self.bfacenodefactors = np.column_stack([half_length, half_length])

    def cell_midpoints(self) -> np.ndarray:
        """Barycenters of all cells (num_cells, dim)."""
        return np.mean(self.coord[self.cellnodes], axis=1)


def _assign_cellregions(midpoints: np.ndarray,
                        cellregions: Optional[Callable[[np.ndarray], np.ndarray]]) -> np.ndarray:
    if cellregions is None:
        return np.ones(midpoints.shape[0], dtype=int)
    regions = np.asarray(cellregions(midpoints), dtype=int)
    if regions.shape != (midpoints.shape[0],):
        raise ValueError("cellregions function must return one region id per cell")
    return regions


def simplexgrid(X: np.ndarray, Y: np.ndarray = None,
                cellregions: Callable[[np.ndarray], np.ndarray] = None,
                coord_system: str = 'cartesian') -> SimplexGrid:
    """
    Create a simplex grid from tensor product coordinates.

    In 1D the boundary point at X[0] is region 1 and the point at X[-1] is
    region 2. In 2D each rectangle is split into two triangles along its
    diagonal, and the boundary regions are 1 (south), 2 (east), 3 (north)
    and 4 (west).

    Args:
        X: Strictly increasing node coordinates along x
        Y: Strictly increasing node coordinates along y (2D grids only)
        cellregions: Optional function mapping cell midpoints (num_cells, dim)
                     to region ids; all cells are region 1 by default
        coord_system: Coordinate system tag passed to the grid
    """
    X = np.asarray(X, dtype=float)
    if X.ndim != 1 or len(X) < 2 or np.any(np.diff(X) <= 0.0):
        raise ValueError("X must be a strictly increasing 1D array with at least 2 entries")

    if Y is None:
        nx = len(X)
        cellnodes = np.column_stack([np.arange(nx - 1), np.arange(1, nx)])
        midpoints = 0.5 * (X[:-1] + X[1:])[:, np.newaxis]
        return SimplexGrid(
            coord=X[:, np.newaxis],
            cellnodes=cellnodes,
            cellregions=_assign_cellregions(midpoints, cellregions),
            bfacenodes=np.array([[0], [nx - 1]]),
            bfaceregions=np.array([1, 2]),
            coord_system=coord_system,
        )

    Y = np.asarray(Y, dtype=float)
    if Y.ndim != 1 or len(Y) < 2 or np.any(np.diff(Y) <= 0.0):
        raise ValueError("Y must be a strictly increasing 1D array with at least 2 entries")

    nx, ny = len(X), len(Y)
    xx, yy = np.meshgrid(X, Y)  # node (i, j) has index i + j * nx
    coord = np.column_stack([xx.ravel(), yy.ravel()])

    def index(i, j):
        return i + j * nx

    cells = []
    for j in range(ny - 1):
        for i in range(nx - 1):
            a, b = index(i, j), index(i + 1, j)
            c, d = index(i + 1, j + 1), index(i, j + 1)
            cells.append((a, b, c))
            cells.append((a, c, d))
    cellnodes = np.array(cells, dtype=int)

    bfaces = []
    bregions = []
    for i in range(nx - 1):
        bfaces.append((index(i, 0), index(i + 1, 0)))
        bregions.append(1)
    for j in range(ny - 1):
        bfaces.append((index(nx - 1, j), index(nx - 1, j + 1)))
        bregions.append(2)
    for i in range(nx - 1):
        bfaces.append((index(i + 1, ny - 1), index(i, ny - 1)))
        bregions.append(3)
    for j in range(ny - 1):
        bfaces.append((index(0, j + 1), index(0, j)))
        bregions.append(4)

    midpoints = np.mean(coord[cellnodes], axis=1)
    return SimplexGrid(
        coord=coord,
        cellnodes=cellnodes,
        cellregions=_assign_cellregions(midpoints, cellregions),
        bfacenodes=np.array(bfaces, dtype=int),
        bfaceregions=np.array(bregions, dtype=int),
        coord_system=coord_system,
    )
