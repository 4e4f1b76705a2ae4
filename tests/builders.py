"""Little-endian writers for building Cal3D test files in memory."""
import struct

CSF = b"CSF\0"
CMF = b"CMF\0"
CAF = b"CAF\0"
CRF = b"CRF\0"

IDENTITY_QUAT = (0.0, 0.0, 0.0, 1.0)


def i32(*values):
    return struct.pack(f"<{len(values)}i", *values)


def f32(*values):
    return struct.pack(f"<{len(values)}f", *values)


def string(text):
    data = text.encode("latin-1")
    return i32(len(data)) + data


def header(magic, version=700):
    return magic + i32(version)


def bone(name, pos=(0.0, 0.0, 0.0), rot=IDENTITY_QUAT, bind_pos=(0.0, 0.0, 0.0),
         bind_rot=IDENTITY_QUAT, parent=-1, children=()):
    return (
        string(name)
        + f32(*pos)
        + f32(*rot)
        + f32(*bind_pos)
        + f32(*bind_rot)
        + i32(parent)
        + i32(len(children))
        + i32(*children)
    )


def skeleton_file(bones, version=700):
    return header(CSF, version) + i32(len(bones)) + b"".join(bones)


def vertex(pos=(0.0, 0.0, 0.0), normal=(0.0, 0.0, 1.0), collapse_id=-1,
           face_collapse_count=0, uvs=(), weights=(), spring_weight=None):
    data = f32(*pos) + f32(*normal) + i32(collapse_id, face_collapse_count)
    for u, v in uvs:
        data += f32(u, v)
    data += i32(len(weights))
    for bone_id, weight in weights:
        data += i32(bone_id) + f32(weight)
    if spring_weight is not None:
        data += f32(spring_weight)
    return data


def submesh(material_id, vertices, triangles, uv_count=0, lod_steps=0, springs=()):
    data = i32(material_id, len(vertices), len(triangles), lod_steps, len(springs), uv_count)
    data += b"".join(vertices)
    for v0, v1, coefficient, idle_length in springs:
        data += i32(v0, v1) + f32(coefficient, idle_length)
    for tri in triangles:
        data += i32(*tri)
    return data


def mesh_file(submeshes, version=700):
    return header(CMF, version) + i32(len(submeshes)) + b"".join(submeshes)


def keyframe(time, pos=(0.0, 0.0, 0.0), rot=IDENTITY_QUAT):
    return f32(time) + f32(*pos) + f32(*rot)


def track(bone_id, keyframes):
    return i32(bone_id, len(keyframes)) + b"".join(keyframes)


def animation_file(duration, tracks, version=700):
    return header(CAF, version) + f32(duration) + i32(len(tracks)) + b"".join(tracks)


def material_file(ambient=(0, 0, 0, 0), diffuse=(0, 0, 0, 0), specular=(0, 0, 0, 0),
                  shininess=0.0, textures=(), version=700):
    data = header(CRF, version)
    data += bytes(ambient) + bytes(diffuse) + bytes(specular)
    data += f32(shininess) + i32(len(textures))
    for name in textures:
        data += string(name)
    return data


def simple_skeleton_file():
    """Root bone with two children."""
    return skeleton_file([
        bone("root", children=(1, 2)),
        bone("left", pos=(1.0, 0.0, 0.0), parent=0),
        bone("right", pos=(-1.0, 0.0, 0.0), parent=0),
    ])
