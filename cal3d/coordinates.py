"""
Coordinate conversion from the Cal3D right-handed space into a left-handed,
Y-up / Z-forward space.

Positions and normals swap Y and Z and negate the new Z. Rotations get the
same swap on their vector part and a negated scalar part. Triangle winding
and the V texture coordinate are flipped to match.
"""
from typing import Sequence, Tuple
import numpy as np
import pyrr


def scale_position(v: Sequence[float], scale: float) -> pyrr.Vector3:
    return pyrr.Vector3(np.asarray(v, dtype=np.float64) * scale)


def convert_axes(v: Sequence[float]) -> pyrr.Vector3:
    x, y, z = v
    return pyrr.Vector3([float(x), float(z), -float(y)])


def convert_position(v: Sequence[float], scale: float) -> pyrr.Vector3:
    """Scale a native position, then move it into the target axes."""
    return convert_axes(scale_position(v, scale))


def convert_rotation(q: Sequence[float]) -> pyrr.Quaternion:
    """Quaternion (x, y, z, w) -> (convert_axes(x, y, z), -w)"""
    x, y, z, w = q
    vx, vy, vz = convert_axes((x, y, z))
    return pyrr.Quaternion([vx, vy, vz, -float(w)])


def flip_v(uv: Sequence[float]) -> Tuple[float, float]:
    return (float(uv[0]), -float(uv[1]))


def flip_winding(i0: int, i1: int, i2: int) -> Tuple[int, int, int]:
    return (i0, i2, i1)


def local_transform(position, rotation) -> pyrr.Matrix44:
    """
    Rotation followed by translation, in pyrr's row-vector convention
    (v' = v @ M, translation lives in row 3).
    """
    rotation = np.asarray(rotation, dtype=np.float64)
    if pyrr.vector.length(rotation) > 0:
        rotation = pyrr.quaternion.normalize(rotation)
    # pyrr's quaternion matrix is column-vector; its inverse is the row-vector form
    rotation_mat = pyrr.matrix44.create_from_inverse_of_quaternion(rotation)
    translation_mat = pyrr.matrix44.create_from_translation(position)
    return pyrr.Matrix44(np.asarray(rotation_mat) @ np.asarray(translation_mat))
