"""
meshes: half-edge connectivity for polygon meshes

Builds a half-edge structure from vertex/face soup, reports irregular input
(degenerate and duplicate faces, winding conflicts, non-manifold edges and
vertices) instead of failing on it, and provides one-ring and boundary
traversal, component labeling and atomic edge collapse / split / flip.
"""

__version__ = "0.2.0"

# Construction
from .builder import BuildOptions, BuildResult, build

# Core structures
from .connectivity import (
    CompactionMap,
    ConnectivityStructure,
    ManifoldEdge,
    MeshState,
    RadialEdge,
)
from .convert import from_arrays, from_trimesh, to_trimesh
from .errors import (
    BuildError,
    Cancelled,
    DegenerateFace,
    Diagnostic,
    DuplicateFace,
    EmptyMesh,
    InvalidFlip,
    InvalidIndex,
    MeshError,
    MutationError,
    NonManifoldEdge,
    NonManifoldVertex,
    NotABoundaryEdge,
    OutOfRange,
    TopologyError,
    WindingConflict,
    WouldCreateNonManifold,
)
from .geometry import GeometryStore

# Editing
from .mutation import MutationResult, collapse_edge, flip_edge, split_edge

# Generators
from .primitives import box, cylinder, icosphere, plane, uvsphere
from .rotation import euler, quaternion_matrix, quaternion_multiply, random_axis, random_rotation

# Traversal
from .traversal import (
    boundary_loop,
    boundary_loops,
    connected_components,
    face_adjacency_graph,
    flood_fill,
    one_ring,
    vertex_faces,
    vertex_neighbors,
)

__all__ = [
    # Construction
    "build",
    "BuildOptions",
    "BuildResult",
    "from_arrays",
    "from_trimesh",
    "to_trimesh",
    # Core structures
    "ConnectivityStructure",
    "GeometryStore",
    "CompactionMap",
    "ManifoldEdge",
    "RadialEdge",
    "MeshState",
    # Editing
    "collapse_edge",
    "split_edge",
    "flip_edge",
    "MutationResult",
    # Traversal
    "one_ring",
    "vertex_neighbors",
    "vertex_faces",
    "boundary_loop",
    "boundary_loops",
    "connected_components",
    "flood_fill",
    "face_adjacency_graph",
    # Generators
    "plane",
    "box",
    "cylinder",
    "uvsphere",
    "icosphere",
    "euler",
    "quaternion_matrix",
    "quaternion_multiply",
    "random_rotation",
    "random_axis",
    # Errors and diagnostics
    "MeshError",
    "BuildError",
    "InvalidIndex",
    "EmptyMesh",
    "MutationError",
    "WouldCreateNonManifold",
    "InvalidFlip",
    "NotABoundaryEdge",
    "OutOfRange",
    "Cancelled",
    "TopologyError",
    "Diagnostic",
    "DegenerateFace",
    "DuplicateFace",
    "WindingConflict",
    "NonManifoldEdge",
    "NonManifoldVertex",
]
