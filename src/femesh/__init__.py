"""The femesh package provides unstructured mesh topology and FEM assembly.

This package offers:
  - Meshes of intervals, triangles, tetrahedra, quadrilaterals and hexahedra
    with lazily computed entities and connectivity.
  - Geometric queries on cells (volume, diameter, normals, containment,
    closest point) and mesh-wide point searches.
  - Ordering, coloring, boundary extraction and uniform refinement.
  - Assembly of scalars, vectors and sparse matrices from local kernels.
  - Structured and CSG-based mesh generation.

Submodules:
  - cell_types: CellType family and factory.
  - topology, topology_computation: Connectivity storage and computation.
  - mesh: Mesh aggregate with geometry, topology and domain markers.
  - mesh_editor: Incremental mesh construction.
  - boundary: Boundary meshes.
  - refinement: Uniform refinement.
  - mesh_partitioning: Partitioned construction and global numbering.
  - form, tensor, assembler: Assembly.
  - generation: Builtin and CSG meshes.

File readers and writers for the XML mesh format live in the top-level
`utils` package.
"""

from .config import config, configure, parameters, set_log_level, use

from femesh.assembler import Assembler, assemble, default_add_to_global, symmetric_split
from femesh.boundary import BoundaryComputation, BoundaryMesh
from femesh.cell_types import (
    CellType,
    HexahedronCell,
    IntervalCell,
    QuadrilateralCell,
    TetrahedronCell,
    TriangleCell,
    create_cell_type,
)
from femesh.form import Form, Integral
from femesh.geometry import MeshGeometry
from femesh.local_mesh_data import LocalMeshData, local_range
from femesh.mesh import Mesh
from femesh.mesh_domains import UNMARKED, MeshDomains
from femesh.mesh_editor import MeshEditor
from femesh.mesh_entity import Cell, Facet, MeshEntity, Vertex, cells, entities, facets, vertices
from femesh.mesh_function import MeshFunction
from femesh.mesh_partitioning import distribute, number_entities
from femesh.refinement import refine
from femesh.tensor import GlobalTensor, Scalar, SparseMatrix, Vector, create_tensor
from femesh.topology import MeshConnectivity, MeshTopology
from femesh.topology_computation import TopologyComputation

__all__ = [
    # Mesh
    "Mesh",
    "MeshEditor",
    "MeshGeometry",
    "MeshTopology",
    "MeshConnectivity",
    "TopologyComputation",
    "MeshFunction",
    "MeshDomains",
    "UNMARKED",
    "LocalMeshData",
    "local_range",
    "BoundaryComputation",
    "BoundaryMesh",
    "refine",
    "distribute",
    "number_entities",
    # Cells and entities
    "CellType",
    "IntervalCell",
    "TriangleCell",
    "TetrahedronCell",
    "QuadrilateralCell",
    "HexahedronCell",
    "create_cell_type",
    "MeshEntity",
    "Vertex",
    "Facet",
    "Cell",
    "entities",
    "vertices",
    "facets",
    "cells",
    # Assembly
    "Form",
    "Integral",
    "GlobalTensor",
    "Scalar",
    "Vector",
    "SparseMatrix",
    "create_tensor",
    "Assembler",
    "assemble",
    "default_add_to_global",
    "symmetric_split",
    # Configuration
    "config",
    "configure",
    "use",
    "parameters",
    "set_log_level",
]
