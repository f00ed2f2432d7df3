"""Module defining XMLLocalMeshReader for the XML mesh format.

The reader streams the file with ElementTree's iterparse and keeps only the
slice of vertices, cells and domain values owned by one partition (see
`femesh.local_mesh_data.local_range`). The expected layout is::

    <dolfin>
      <mesh celltype="triangle" dim="2">
        <vertices size="N"> <vertex index="0" x="..." y="..."/> ... </vertices>
        <cells size="M"> <triangle index="0" v0="..." v1="..." v2="..."/> ... </cells>
        <domains>
          <mesh_value_collection type="uint" dim="1" size="K">
            <value cell_index="..." local_entity="..." value="..."/>
          </mesh_value_collection>
        </domains>
        <data> ... </data>
      </mesh>
    </dolfin>

`<data>` sections are skipped.
"""

import logging
import xml.etree.ElementTree as ET
from typing import List, Tuple

import numpy as np

from femesh.cell_types import create_cell_type
from femesh.local_mesh_data import LocalMeshData, local_range

_LOGGER = logging.getLogger(__name__)

OUTSIDE = "outside"
INSIDE_MESH = "inside_mesh"
INSIDE_VERTICES = "inside_vertices"
INSIDE_CELLS = "inside_cells"
INSIDE_DOMAINS = "inside_domains"
INSIDE_MESH_VALUE_COLLECTION = "inside_mesh_value_collection"
INSIDE_DATA = "inside_data"
DONE = "done"

_COORDINATES = ("x", "y", "z")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


class XMLLocalMeshReader:
    """Reader of the partition `rank` of an XML mesh file.

    Args:
        filename (str): Path to the XML file.
        rank (int): Partition to read.
        num_processes (int): Number of partitions.
    """

    def __init__(self, filename: str, rank: int = 0, num_processes: int = 1) -> None:
        if num_processes < 1 or rank < 0 or rank >= num_processes:
            _LOGGER.error("XMLLocalMeshReader: illegal rank %d of %d", rank, num_processes)
            raise ValueError(f"Illegal process rank {rank} of {num_processes}")
        self.filename = filename
        self.rank = int(rank)
        self.num_processes = int(num_processes)
        self._reset()

    def _reset(self) -> None:
        self.state = OUTSIDE
        self._data = LocalMeshData()
        self._cell_name = ""
        self._vertex_range: Tuple[int, int] = (0, 0)
        self._cell_range: Tuple[int, int] = (0, 0)
        self._vertex_indices: List[int] = []
        self._coordinates = np.zeros((0, 0), dtype=float)
        self._cell_indices: List[int] = []
        self._cells = np.zeros((0, 0), dtype=np.int64)
        self._domain_dim = 0
        self._domain_range: Tuple[int, int] = (0, 0)
        self._domain_counter = 0
        self._data_depth = 0

    def _attr(self, elem: ET.Element, name: str) -> str:
        value = elem.get(name)
        if value is None:
            _LOGGER.error("XMLLocalMeshReader: <%s> lacks attribute %r", elem.tag, name)
            raise ValueError(f"Missing attribute {name!r} on <{elem.tag}> in {self.filename}")
        return value

    def _int(self, elem: ET.Element, name: str) -> int:
        return int(self._attr(elem, name))

    # State transitions
    def _start(self, elem: ET.Element) -> None:
        name = _local_name(elem.tag)
        if self.state == OUTSIDE:
            if name == "mesh":
                self._read_mesh(elem)
                self.state = INSIDE_MESH
        elif self.state == INSIDE_MESH:
            if name == "vertices":
                self._read_vertices(elem)
                self.state = INSIDE_VERTICES
            elif name == "cells":
                self._read_cells(elem)
                self.state = INSIDE_CELLS
            elif name == "domains":
                self.state = INSIDE_DOMAINS
            elif name == "data":
                self.state = INSIDE_DATA
                self._data_depth = 0
        elif self.state == INSIDE_DOMAINS:
            if name == "mesh_value_collection":
                self._read_mesh_value_collection(elem)
                self.state = INSIDE_MESH_VALUE_COLLECTION
        elif self.state == INSIDE_DATA:
            self._data_depth += 1
        elif self.state == DONE:
            _LOGGER.error("XMLLocalMeshReader: element <%s> after the end of the mesh", name)
            raise ValueError(f"Unexpected element <{name}> after </mesh> in {self.filename}")

    def _end(self, elem: ET.Element) -> None:
        name = _local_name(elem.tag)
        if self.state == INSIDE_MESH and name == "mesh":
            self.state = DONE
        elif self.state == INSIDE_VERTICES:
            if name == "vertex":
                self._read_vertex(elem)
            elif name == "vertices":
                self.state = INSIDE_MESH
        elif self.state == INSIDE_CELLS:
            if name == "cells":
                self.state = INSIDE_MESH
            else:
                self._read_cell(name, elem)
        elif self.state == INSIDE_DOMAINS and name == "domains":
            self.state = INSIDE_MESH
        elif self.state == INSIDE_MESH_VALUE_COLLECTION:
            if name == "value":
                self._read_mesh_value_collection_entry(elem)
            elif name == "mesh_value_collection":
                self.state = INSIDE_DOMAINS
        elif self.state == INSIDE_DATA:
            if self._data_depth == 0 and name == "data":
                self.state = INSIDE_MESH
            else:
                self._data_depth -= 1

    # Element handlers
    def _read_mesh(self, elem: ET.Element) -> None:
        cell_type = create_cell_type(self._attr(elem, "celltype"))
        self._cell_name = cell_type.cell_type()
        self._data.cell_type = self._cell_name
        self._data.tdim = cell_type.dim()
        self._data.gdim = self._int(elem, "dim")
        self._data.num_vertices_per_cell = cell_type.num_vertices()
        if self._data.gdim < 1 or self._data.gdim > 3:
            _LOGGER.error("XMLLocalMeshReader: geometric dimension %d", self._data.gdim)
            raise ValueError(f"Illegal geometric dimension {self._data.gdim} in {self.filename}")

    def _read_vertices(self, elem: ET.Element) -> None:
        n = self._int(elem, "size")
        self._data.num_global_vertices = n
        self._vertex_range = local_range(n, self.rank, self.num_processes)
        self._coordinates = np.zeros(
            (self._vertex_range[1] - self._vertex_range[0], self._data.gdim), dtype=float
        )

    def _read_vertex(self, elem: ET.Element) -> None:
        v = self._int(elem, "index")
        start, end = self._vertex_range
        if v < start or v >= end:
            return
        for i in range(self._data.gdim):
            self._coordinates[v - start, i] = float(self._attr(elem, _COORDINATES[i]))
        self._vertex_indices.append(v)

    def _read_cells(self, elem: ET.Element) -> None:
        n = self._int(elem, "size")
        self._data.num_global_cells = n
        self._cell_range = local_range(n, self.rank, self.num_processes)
        self._cells = np.zeros(
            (self._cell_range[1] - self._cell_range[0], self._data.num_vertices_per_cell),
            dtype=np.int64,
        )

    def _read_cell(self, name: str, elem: ET.Element) -> None:
        if name != self._cell_name:
            _LOGGER.error(
                "XMLLocalMeshReader: cell <%s> in a mesh of %s cells", name, self._cell_name
            )
            raise ValueError(
                f"Mesh entity ({name}) does not match the cell type of the mesh ({self._cell_name})"
            )
        c = self._int(elem, "index")
        start, end = self._cell_range
        if c < start or c >= end:
            return
        for i in range(self._data.num_vertices_per_cell):
            self._cells[c - start, i] = self._int(elem, f"v{i}")
        self._cell_indices.append(c)

    def _read_mesh_value_collection(self, elem: ET.Element) -> None:
        value_type = self._attr(elem, "type")
        if value_type != "uint":
            _LOGGER.error("XMLLocalMeshReader: domain values of type %r", value_type)
            raise ValueError("Only unsigned integer (uint) domain values can be read")
        self._domain_dim = self._int(elem, "dim")
        size = self._int(elem, "size")
        self._domain_range = local_range(size, self.rank, self.num_processes)
        self._domain_counter = 0
        self._data.domain_data.setdefault(self._domain_dim, [])

    def _read_mesh_value_collection_entry(self, elem: ET.Element) -> None:
        start, end = self._domain_range
        if start <= self._domain_counter < end:
            entry = (
                self._int(elem, "cell_index"),
                self._int(elem, "local_entity"),
                self._int(elem, "value"),
            )
            self._data.domain_data[self._domain_dim].append(entry)
        self._domain_counter += 1

    def read(self) -> LocalMeshData:
        """Parse the file and return the local mesh data of this partition.

        Raises:
            ValueError: If the XML is malformed, a cell does not match the
                mesh cell type or domain values are not unsigned integers.
        """
        self._reset()
        try:
            for event, elem in ET.iterparse(self.filename, events=("start", "end")):
                if event == "start":
                    self._start(elem)
                else:
                    self._end(elem)
                    elem.clear()
        except ET.ParseError as exc:
            _LOGGER.exception("XMLLocalMeshReader: failed to parse '%s'", self.filename)
            raise ValueError(f"Illegal XML data in {self.filename}: {exc}") from exc

        if self.state == OUTSIDE:
            _LOGGER.error("XMLLocalMeshReader: no <mesh> element in '%s'", self.filename)
            raise ValueError(f"No mesh found in {self.filename}")

        data = self._data
        order = np.argsort(self._vertex_indices, kind="stable")
        data.vertex_indices = np.asarray(self._vertex_indices, dtype=np.int64)[order]
        coordinates = self._coordinates
        if coordinates.shape[1] != data.gdim:
            # No <vertices> section
            coordinates = np.zeros((0, data.gdim))
        start = self._vertex_range[0]
        data.vertex_coordinates = coordinates[data.vertex_indices - start]
        cells = self._cells
        if cells.shape[1] != data.num_vertices_per_cell:
            cells = np.zeros((0, data.num_vertices_per_cell), dtype=np.int64)
        data.global_cell_indices = np.sort(np.asarray(self._cell_indices, dtype=np.int64))
        data.cell_vertices = cells[data.global_cell_indices - self._cell_range[0]]
        _LOGGER.info("Read %s from '%s'", data, self.filename)
        return data
