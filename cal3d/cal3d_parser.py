import os
import struct
import bisect
from dataclasses import dataclass, field
from typing import List, Tuple, Optional, Dict
import numpy as np
import pyrr

from cal3d.coordinates import convert_axes, convert_position, convert_rotation, flip_v, flip_winding, local_transform
from cal3d.debug_console import DebugConsole


# ==========================================================================
# 1. Constants, Errors and the Binary Reader
# ==========================================================================
class Cal3DMagic:
    Skeleton = 0x00465343  # 'CSF\0'
    Animation = 0x00464143  # 'CAF\0'
    Mesh = 0x00464D43  # 'CMF\0'
    Material = 0x00465243  # 'CRF\0'


BINARY_FORMAT_VERSION = 700
NO_PARENT = -1


class Cal3DError(Exception):
    """Base class for every error raised by the loader."""


class UnexpectedEndOfData(Cal3DError, EOFError):
    """The stream ended in the middle of a record."""


class AssetIntegrityError(Cal3DError):
    """An index reference (material, bone, vertex) does not resolve."""


class UnrecognizedFileError(Cal3DError):
    """A file named by a manifest is not of the kind it was listed as."""


class BinaryReader:
    def __init__(self, stream, endian="<"):
        self.stream = stream
        self.endian = endian

    def read_bytes(self, num_bytes):
        data = self.stream.read(num_bytes)
        if len(data) < num_bytes:
            raise UnexpectedEndOfData(
                f"Tried to read {num_bytes} bytes, but only got {len(data)}."
            )
        return data

    def read_struct(self, fmt, num_bytes):
        return struct.unpack(self.endian + fmt, self.read_bytes(num_bytes))

    def read_u32(self):
        return self.read_struct("I", 4)[0]

    def read_i32(self):
        return self.read_struct("i", 4)[0]

    def read_f32(self):
        return self.read_struct("f", 4)[0]

    def read_string(self):
        # One byte per character; the format does not name an encoding.
        length = self.read_i32()
        if length <= 0:
            return ""
        return self.read_bytes(length).decode("latin-1")

    def read_vec2(self) -> Tuple[float, ...]:
        return self.read_struct("ff", 8)

    def read_vec3(self) -> Tuple[float, ...]:
        return self.read_struct("fff", 12)

    def read_quat(self) -> Tuple[float, ...]:
        return self.read_struct("ffff", 16)

    def read_color(self) -> Tuple[int, ...]:
        return self.read_struct("BBBB", 4)


# ==============================================================================
# 2. Skeleton Data Structures
# ==============================================================================
@dataclass
class Bone:
    name: str
    id: int
    local_pos: pyrr.Vector3
    local_rot: pyrr.Quaternion
    local_to_bone: pyrr.Matrix44
    parent: int = NO_PARENT
    children: List[int] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent == NO_PARENT


@dataclass
class Skeleton:
    bones: List[Bone] = field(default_factory=list)

    def find_bone(self, name: str) -> Optional[Bone]:
        return next((b for b in self.bones if b.name == name), None)

    def root_bones(self) -> List[Bone]:
        return [b for b in self.bones if b.is_root]


# ==============================================================================
# 3. Mesh Data Structures
# ==============================================================================
@dataclass
class BoneWeight:
    bone_id: int
    weight: float


@dataclass
class Vertex:
    local_pos: pyrr.Vector3
    local_normal: pyrr.Vector3
    collapse_id: int
    face_collapse_count: int
    uv_maps: List[Tuple[float, float]] = field(default_factory=list)
    bone_weights: List[BoneWeight] = field(default_factory=list)
    # Only stored when the owning submesh declares springs.
    spring_weight: Optional[float] = None


@dataclass
class Spring:
    vertex_id0: int
    vertex_id1: int
    spring_coefficient: float
    idle_length: float


@dataclass
class Submesh:
    material_id: int
    lod_steps: int
    uv_count: int
    vertices: List[Vertex] = field(default_factory=list)
    springs: List[Spring] = field(default_factory=list)
    triangles: List[int] = field(default_factory=list)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles) // 3


@dataclass
class Mesh:
    name: str
    submeshes: List[Submesh] = field(default_factory=list)


# ==============================================================================
# 4. Animation Data Structures
# ==============================================================================
@dataclass
class Keyframe:
    time: float
    local_pos: pyrr.Vector3
    local_rot: pyrr.Quaternion


@dataclass
class AnimationTrack:
    """All keyframes of one bone. Times are stored as read, not sorted."""
    bone_id: int
    keyframes: List[Keyframe] = field(default_factory=list)

    def is_time_ordered(self) -> bool:
        times = [k.time for k in self.keyframes]
        return all(a <= b for a, b in zip(times, times[1:]))

    def sample(self, time: float) -> Optional[Tuple[pyrr.Vector3, pyrr.Quaternion]]:
        """Interpolated (position, rotation) at `time`, clamped to the track ends."""
        keys = self.keyframes
        if not keys:
            return None
        if time <= keys[0].time:
            return keys[0].local_pos, keys[0].local_rot
        if time >= keys[-1].time:
            return keys[-1].local_pos, keys[-1].local_rot

        timestamps = [k.time for k in keys]
        next_idx = bisect.bisect_right(timestamps, time)
        prev_key = keys[next_idx - 1]
        next_key = keys[next_idx]

        time_diff = next_key.time - prev_key.time
        factor = (time - prev_key.time) / time_diff if time_diff > 0 else 0

        pos = (
            np.asarray(prev_key.local_pos) * (1.0 - factor)
            + np.asarray(next_key.local_pos) * factor
        )
        rot = pyrr.quaternion.slerp(
            np.asarray(prev_key.local_rot), np.asarray(next_key.local_rot), factor
        )
        return pyrr.Vector3(pos), pyrr.Quaternion(rot)


@dataclass
class Animation:
    name: str
    duration: float = 0.0
    tracks: List[AnimationTrack] = field(default_factory=list)

    def tracks_by_bone(self) -> Dict[int, AnimationTrack]:
        return {track.bone_id: track for track in self.tracks}


# ==============================================================================
# 5. Material Data Structures
# ==============================================================================
@dataclass
class Material:
    name: str
    ambient: Tuple[int, int, int, int] = (0, 0, 0, 0)
    diffuse: Tuple[int, int, int, int] = (0, 0, 0, 0)
    specular: Tuple[int, int, int, int] = (0, 0, 0, 0)
    shininess: float = 0.0
    texture_names: List[str] = field(default_factory=list)


# ==============================================================================
# 6. Binary Parsers (CSF / CMF / CAF / CRF)
# ==============================================================================
class Cal3DParser:
    """
    Shared header handling for the binary Cal3D files.

    `source` is either a path or an open binary stream. A path is opened and
    closed by `parse`; an open stream is read from and left to its owner.
    """

    MAGIC = None
    KIND = ""

    def __init__(self, source, name=None):
        self.source = source
        self.name = name
        self.reader = None
        self.version = None

    def parse(self):
        if isinstance(self.source, (str, os.PathLike)):
            if not os.path.exists(self.source):
                raise FileNotFoundError(f"File not found: {self.source}")
            if self.name is None:
                self.name = os.path.splitext(os.path.basename(self.source))[0]
            with open(self.source, "rb") as f:
                return self._parse_stream(f)
        if self.name is None:
            self.name = ""
        return self._parse_stream(self.source)

    def _parse_stream(self, stream):
        self.reader = BinaryReader(stream)
        if not self._read_header():
            return None
        return self._read_body()

    def _read_header(self) -> bool:
        magic = self.reader.read_u32()
        if magic != self.MAGIC:
            DebugConsole.log(
                f"Not a {self.KIND} file (magic 0x{magic:08X}, expected 0x{self.MAGIC:08X})"
            )
            return False
        self.version = self.reader.read_i32()
        if self.version != BINARY_FORMAT_VERSION:
            DebugConsole.warning(
                f"{self.KIND} file format is {self.version} while {BINARY_FORMAT_VERSION} was expected"
            )
        return True

    def _read_body(self):
        raise NotImplementedError


class CSFParser(Cal3DParser):
    MAGIC = Cal3DMagic.Skeleton
    KIND = "CSF"

    def __init__(self, source, scale=1.0):
        super().__init__(source)
        self.scale = scale

    def _read_body(self) -> Skeleton:
        bone_count = self.reader.read_i32()
        skeleton = Skeleton()
        for i in range(bone_count):
            skeleton.bones.append(self._read_bone(i))
        return skeleton

    def _read_bone(self, bone_id) -> Bone:
        name = self.reader.read_string()
        local_pos = convert_position(self.reader.read_vec3(), self.scale)
        local_rot = convert_rotation(self.reader.read_quat())
        bind_translation = convert_position(self.reader.read_vec3(), self.scale)
        bind_rotation = convert_rotation(self.reader.read_quat())
        bone = Bone(
            name=name,
            id=bone_id,
            local_pos=local_pos,
            local_rot=local_rot,
            local_to_bone=local_transform(bind_translation, bind_rotation),
        )
        bone.parent = self.reader.read_i32()
        num_children = self.reader.read_i32()
        bone.children = [self.reader.read_i32() for _ in range(num_children)]
        return bone


class CMFParser(Cal3DParser):
    MAGIC = Cal3DMagic.Mesh
    KIND = "CMF"

    def __init__(self, source, scale=1.0, name=None):
        super().__init__(source, name)
        self.scale = scale

    def _read_body(self) -> Mesh:
        mesh = Mesh(name=self.name)
        num_submeshes = self.reader.read_i32()
        for _ in range(num_submeshes):
            mesh.submeshes.append(self._read_submesh())
        return mesh

    def _read_submesh(self) -> Submesh:
        submesh = Submesh(
            material_id=self.reader.read_i32(), lod_steps=0, uv_count=0
        )
        num_vertices = self.reader.read_i32()
        num_triangles = self.reader.read_i32()
        submesh.lod_steps = self.reader.read_i32()
        num_springs = self.reader.read_i32()
        submesh.uv_count = self.reader.read_i32()

        for _ in range(num_vertices):
            submesh.vertices.append(
                self._read_vertex(submesh.uv_count, num_springs > 0)
            )
        for _ in range(num_springs):
            submesh.springs.append(
                Spring(
                    vertex_id0=self.reader.read_i32(),
                    vertex_id1=self.reader.read_i32(),
                    spring_coefficient=self.reader.read_f32(),
                    idle_length=self.reader.read_f32() * self.scale,
                )
            )
        for _ in range(num_triangles):
            i0, i1, i2 = self.reader.read_struct("iii", 12)
            submesh.triangles.extend(flip_winding(i0, i1, i2))
        return submesh

    def _read_vertex(self, uv_count, has_springs) -> Vertex:
        vertex = Vertex(
            local_pos=convert_position(self.reader.read_vec3(), self.scale),
            local_normal=convert_axes(self.reader.read_vec3()),
            collapse_id=self.reader.read_i32(),
            face_collapse_count=self.reader.read_i32(),
        )
        vertex.uv_maps = [flip_v(self.reader.read_vec2()) for _ in range(uv_count)]
        num_influences = self.reader.read_i32()
        for _ in range(num_influences):
            vertex.bone_weights.append(
                BoneWeight(self.reader.read_i32(), self.reader.read_f32())
            )
        if has_springs:
            vertex.spring_weight = self.reader.read_f32()
        return vertex


class CAFParser(Cal3DParser):
    MAGIC = Cal3DMagic.Animation
    KIND = "CAF"

    def __init__(self, source, scale=1.0, name=None):
        super().__init__(source, name)
        self.scale = scale

    def _read_body(self) -> Animation:
        animation = Animation(name=self.name, duration=self.reader.read_f32())
        num_tracks = self.reader.read_i32()
        for _ in range(num_tracks):
            animation.tracks.append(self._read_track())
        return animation

    def _read_track(self) -> AnimationTrack:
        track = AnimationTrack(bone_id=self.reader.read_i32())
        num_keyframes = self.reader.read_i32()
        for _ in range(num_keyframes):
            track.keyframes.append(
                Keyframe(
                    time=self.reader.read_f32(),
                    local_pos=convert_position(self.reader.read_vec3(), self.scale),
                    local_rot=convert_rotation(self.reader.read_quat()),
                )
            )
        return track


class CRFParser(Cal3DParser):
    MAGIC = Cal3DMagic.Material
    KIND = "CRF"

    def _read_body(self) -> Material:
        mat = Material(name=self.name)
        mat.ambient = self.reader.read_color()
        mat.diffuse = self.reader.read_color()
        mat.specular = self.reader.read_color()
        mat.shininess = self.reader.read_f32()
        num_textures = self.reader.read_i32()
        for _ in range(num_textures):
            mat.texture_names.append(self.reader.read_string().replace("\0", ""))
        return mat


def read_skeleton(source, scale=1.0) -> Optional[Skeleton]:
    return CSFParser(source, scale).parse()


def read_mesh(source, scale=1.0, name=None) -> Optional[Mesh]:
    return CMFParser(source, scale, name).parse()


def read_animation(source, scale=1.0, name=None) -> Optional[Animation]:
    return CAFParser(source, scale, name).parse()


def read_material(source, name=None) -> Optional[Material]:
    return CRFParser(source, name).parse()
