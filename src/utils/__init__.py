"""The utils package contains file readers and writers used by femesh.

Submodules:
  - xml_local_mesh_reader: XMLLocalMeshReader for partitioned XML mesh input.
  - xml_mesh_writer: XMLMeshWriter for writing meshes with domain markers.

Utilities:
  XMLLocalMeshReader, XMLMeshWriter
"""

from utils.xml_local_mesh_reader import XMLLocalMeshReader
from utils.xml_mesh_writer import XMLMeshWriter

__all__ = [
    "XMLLocalMeshReader",
    "XMLMeshWriter",
]
