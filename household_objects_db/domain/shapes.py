"""
Geometry shapes handed to downstream planners.

Meshes are stored as a flat triangle index list and a flat xyz vertex list;
`shape_from_mesh` regroups the vertices into points.
"""
from __future__ import annotations

from typing import List, Sequence

from pydantic import BaseModel, Field

from household_objects_db.errors import GeometryError


class Point(BaseModel):
    """
    A single mesh vertex.
    """

    x: float = Field(..., description="X coordinate.")
    y: float = Field(..., description="Y coordinate.")
    z: float = Field(..., description="Z coordinate.")

    model_config = {"frozen": True}


class Shape(BaseModel):
    """
    Triangle mesh: every three consecutive triangle indices name one face.
    """

    triangles: List[int] = Field(default_factory=list, description="Vertex indices, 3 per face.")
    vertices: List[Point] = Field(default_factory=list, description="Mesh vertices.")

    model_config = {"frozen": True}


def shape_from_mesh(triangles: Sequence[int], vertices: Sequence[float]) -> Shape:
    """
    Build a Shape from stored mesh lists.

    Raises GeometryError when the vertex list is not a multiple of 3.
    """
    if len(vertices) % 3 != 0:
        raise GeometryError(
            f"size of vertex list ({len(vertices)}) is not a multiple of 3"
        )
    points = [
        Point(x=vertices[i], y=vertices[i + 1], z=vertices[i + 2])
        for i in range(0, len(vertices), 3)
    ]
    return Shape(triangles=list(triangles), vertices=points)


__all__ = ["Point", "Shape", "shape_from_mesh"]
