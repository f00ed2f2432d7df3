"""Module defining XMLMeshWriter for exporting meshes to the XML mesh format.

The written file is read back by XMLLocalMeshReader. Domain markers of
every dimension are stored as (cell, local entity, value) triples.
"""

import logging
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING

from femesh.local_mesh_data import LocalMeshData

if TYPE_CHECKING:
    from femesh.mesh import Mesh

_LOGGER = logging.getLogger(__name__)

_COORDINATES = ("x", "y", "z")


class XMLMeshWriter:
    """Utility class for writing meshes to XML."""

    @staticmethod
    def to_element(mesh: "Mesh") -> ET.Element:
        """Return the `<dolfin>` element describing `mesh`."""
        data = LocalMeshData.from_mesh(mesh)
        root = ET.Element("dolfin")
        mesh_elem = ET.SubElement(
            root, "mesh", {"celltype": data.cell_type, "dim": str(data.gdim)}
        )

        vertices = ET.SubElement(mesh_elem, "vertices", {"size": str(data.num_global_vertices)})
        for v, x in zip(data.vertex_indices, data.vertex_coordinates):
            attrs = {"index": str(int(v))}
            for i in range(data.gdim):
                attrs[_COORDINATES[i]] = repr(float(x[i]))
            ET.SubElement(vertices, "vertex", attrs)

        cells = ET.SubElement(mesh_elem, "cells", {"size": str(data.num_global_cells)})
        for c, row in zip(data.global_cell_indices, data.cell_vertices):
            attrs = {"index": str(int(c))}
            for i, v in enumerate(row):
                attrs[f"v{i}"] = str(int(v))
            ET.SubElement(cells, data.cell_type, attrs)

        if any(data.domain_data.values()):
            domains = ET.SubElement(mesh_elem, "domains")
            for dim in sorted(data.domain_data):
                entries = data.domain_data[dim]
                if not entries:
                    continue
                collection = ET.SubElement(
                    domains,
                    "mesh_value_collection",
                    {"type": "uint", "dim": str(dim), "size": str(len(entries))},
                )
                for cell, local_entity, value in entries:
                    ET.SubElement(
                        collection,
                        "value",
                        {
                            "cell_index": str(cell),
                            "local_entity": str(local_entity),
                            "value": str(value),
                        },
                    )
        return root

    @staticmethod
    def write_mesh(mesh: "Mesh", filename: str) -> None:
        """Write `mesh` to an XML file.

        Args:
            mesh (Mesh): Mesh to export, with its domain markers.
            filename (str): Path to the output .xml file.

        Returns:
            None: The file is written to disk.
        """
        tree = ET.ElementTree(XMLMeshWriter.to_element(mesh))
        ET.indent(tree)
        try:
            tree.write(filename, encoding="utf-8", xml_declaration=True)
        except OSError:
            _LOGGER.exception("XMLMeshWriter: failed to write '%s'", filename)
            raise
        _LOGGER.info("Wrote mesh with %d cells to '%s'", mesh.num_cells(), filename)
