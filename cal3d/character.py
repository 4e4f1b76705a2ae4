import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import numpy as np
import pyrr

from cal3d.cal3d_parser import (
    NO_PARENT,
    Animation,
    AssetIntegrityError,
    Material,
    Mesh,
    Skeleton,
)
from cal3d.coordinates import local_transform
from cal3d.debug_console import DebugConsole

MAX_UV_CHANNELS = 4
MAX_BONE_INFLUENCES = 4


# ==============================================================================
# 1. Character Asset
# ==============================================================================
@dataclass
class CharacterAsset:
    """A skeleton plus the meshes, animations and materials that refer to it."""

    name: str = ""
    path: Optional[str] = None  # directory relative file names resolve against
    scale: float = 1.0
    skeleton: Optional[Skeleton] = None
    meshes: List[Mesh] = field(default_factory=list)
    animations: List[Animation] = field(default_factory=list)
    materials: List[Material] = field(default_factory=list)


def skeleton_world_transforms(skeleton: Skeleton) -> List[pyrr.Matrix44]:
    """
    World-space bind transform of every bone (world = local @ parent_world).

    Raises AssetIntegrityError when a parent is out of range or a parent
    chain loops back on itself.
    """
    bones = skeleton.bones
    num_bones = len(bones)
    world_transforms = [pyrr.Matrix44.identity() for _ in range(num_bones)]
    processed = [False] * num_bones

    for start in range(num_bones):
        # Walk up to the first processed ancestor (or the root), then resolve
        # the chain top-down.
        chain = []
        on_chain = set()
        index = start
        while index != NO_PARENT and not processed[index]:
            if index in on_chain:
                names = " -> ".join(bones[i].name for i in chain)
                raise AssetIntegrityError(f"Bone hierarchy contains a cycle: {names}")
            on_chain.add(index)
            chain.append(index)
            parent = bones[index].parent
            if parent != NO_PARENT and not 0 <= parent < num_bones:
                raise AssetIntegrityError(
                    f"Bone {index} ('{bones[index].name}') has parent {parent}, "
                    f"but the skeleton has {num_bones} bones"
                )
            index = parent
        for bone_index in reversed(chain):
            bone = bones[bone_index]
            local = local_transform(bone.local_pos, bone.local_rot)
            if bone.parent == NO_PARENT:
                world_transforms[bone_index] = local
            else:
                world_transforms[bone_index] = pyrr.Matrix44(
                    np.asarray(local) @ np.asarray(world_transforms[bone.parent])
                )
            processed[bone_index] = True
    return world_transforms


def _validate_skeleton(skeleton: Skeleton):
    bones = skeleton.bones
    num_bones = len(bones)
    for index, bone in enumerate(bones):
        if bone.id != index:
            raise AssetIntegrityError(
                f"Bone '{bone.name}' has id {bone.id} but sits at index {index}"
            )
        if bone.parent != NO_PARENT and not 0 <= bone.parent < num_bones:
            raise AssetIntegrityError(
                f"Bone '{bone.name}' has parent {bone.parent}, skeleton has {num_bones} bones"
            )
        for child in bone.children:
            if not 0 <= child < num_bones:
                raise AssetIntegrityError(
                    f"Bone '{bone.name}' lists child {child}, skeleton has {num_bones} bones"
                )
            if bones[child].parent != index:
                raise AssetIntegrityError(
                    f"Bone '{bone.name}' lists child '{bones[child].name}' whose parent is {bones[child].parent}"
                )
        if bone.parent != NO_PARENT and index not in bones[bone.parent].children:
            raise AssetIntegrityError(
                f"Bone '{bone.name}' is not among the children of its parent '{bones[bone.parent].name}'"
            )

    roots = skeleton.root_bones()
    if len(roots) != 1:
        raise AssetIntegrityError(
            f"Skeleton must have exactly one root bone, found {len(roots)}"
        )
    skeleton_world_transforms(skeleton)


def validate_character(asset: CharacterAsset):
    """Check every index reference of the asset, raising AssetIntegrityError."""
    num_bones = len(asset.skeleton.bones) if asset.skeleton else 0
    num_materials = len(asset.materials)

    if asset.skeleton is not None:
        _validate_skeleton(asset.skeleton)

    for mesh in asset.meshes:
        for submesh_index, submesh in enumerate(mesh.submeshes):
            where = f"mesh '{mesh.name}' submesh {submesh_index}"
            if not 0 <= submesh.material_id < num_materials:
                raise AssetIntegrityError(
                    f"{where} uses material {submesh.material_id}, only {num_materials} loaded"
                )
            num_vertices = len(submesh.vertices)
            for vertex_id in submesh.triangles:
                if not 0 <= vertex_id < num_vertices:
                    raise AssetIntegrityError(
                        f"{where} has triangle index {vertex_id}, only {num_vertices} vertices"
                    )
            for spring in submesh.springs:
                for vertex_id in (spring.vertex_id0, spring.vertex_id1):
                    if not 0 <= vertex_id < num_vertices:
                        raise AssetIntegrityError(
                            f"{where} has a spring on vertex {vertex_id}, only {num_vertices} vertices"
                        )
            if asset.skeleton is None:
                continue
            for vertex in submesh.vertices:
                for influence in vertex.bone_weights:
                    if not 0 <= influence.bone_id < num_bones:
                        raise AssetIntegrityError(
                            f"{where} is weighted to bone {influence.bone_id}, skeleton has {num_bones} bones"
                        )

    for animation in asset.animations:
        for track in animation.tracks:
            if not 0 <= track.bone_id < num_bones:
                raise AssetIntegrityError(
                    f"Animation '{animation.name}' animates bone {track.bone_id}, skeleton has {num_bones} bones"
                )
            if not track.is_time_ordered():
                DebugConsole.warning(
                    f"Animation '{animation.name}' track for bone {track.bone_id} has keyframes out of time order"
                )


def assemble_character(
        skeleton: Optional[Skeleton],
        meshes: List[Mesh],
        animations: List[Animation],
        materials: List[Material],
        scale: float = 1.0,
        path: Optional[str] = None,
        name: str = "",
) -> CharacterAsset:
    """Compose decoded records into a validated CharacterAsset."""
    asset = CharacterAsset(
        name=name,
        path=path,
        scale=scale,
        skeleton=skeleton,
        meshes=list(meshes),
        animations=list(animations),
        materials=list(materials),
    )
    validate_character(asset)
    return asset


# ==============================================================================
# 2. Mesh Merge and Skinning
# ==============================================================================
@dataclass
class SkinningData:
    """Holds bone IDs and weights for each vertex."""

    bone_ids: np.ndarray  # Shape: (num_verts, 4), dtype: int32
    bone_weights: np.ndarray  # Shape: (num_verts, 4), dtype: float32


@dataclass
class RenderableMesh:
    """All submeshes of one mesh merged into a single vertex buffer."""

    name: str
    vertices: np.ndarray  # (num_verts, 3) float32
    normals: np.ndarray  # (num_verts, 3) float32
    uvs: np.ndarray  # (num_verts, MAX_UV_CHANNELS, 2) float32
    uv_channel_count: int
    skinning_data: SkinningData
    has_bone_weights: bool = False
    sub_meshes: List[dict] = field(
        default_factory=list
    )  # { "indices": ndarray, "index_count": int, "material_id": int, "material_name": str, "texture_name": str }
    bind_poses: List[pyrr.Matrix44] = field(default_factory=list)


def build_bind_poses(skeleton: Optional[Skeleton]) -> List[pyrr.Matrix44]:
    if skeleton is None:
        return []
    return [bone.local_to_bone for bone in skeleton.bones]


def merge_mesh(
        mesh: Mesh,
        skeleton: Optional[Skeleton] = None,
        materials: Optional[List[Material]] = None,
) -> RenderableMesh:
    submeshes = mesh.submeshes
    uv_channel_count = min(
        max((s.uv_count for s in submeshes), default=0), MAX_UV_CHANNELS
    )
    num_verts = sum(len(s.vertices) for s in submeshes)

    positions = np.zeros((num_verts, 3), dtype=np.float32)
    normals = np.zeros((num_verts, 3), dtype=np.float32)
    uvs = np.zeros((num_verts, MAX_UV_CHANNELS, 2), dtype=np.float32)
    bone_ids = np.zeros((num_verts, MAX_BONE_INFLUENCES), dtype=np.int32)
    bone_weights = np.zeros((num_verts, MAX_BONE_INFLUENCES), dtype=np.float32)
    has_bone_weights = False

    renderable = RenderableMesh(
        name=mesh.name,
        vertices=positions,
        normals=normals,
        uvs=uvs,
        uv_channel_count=uv_channel_count,
        skinning_data=SkinningData(bone_ids=bone_ids, bone_weights=bone_weights),
        bind_poses=build_bind_poses(skeleton),
    )

    vertex_offset = 0
    for submesh in submeshes:
        for n, vertex in enumerate(submesh.vertices):
            i = vertex_offset + n
            positions[i] = vertex.local_pos
            normals[i] = vertex.local_normal
            for j, uv in enumerate(vertex.uv_maps[:uv_channel_count]):
                uvs[i, j] = uv
            for j, influence in enumerate(vertex.bone_weights[:MAX_BONE_INFLUENCES]):
                has_bone_weights = True
                bone_ids[i, j] = influence.bone_id
                bone_weights[i, j] = influence.weight

        material = None
        if materials is not None and 0 <= submesh.material_id < len(materials):
            material = materials[submesh.material_id]
        renderable.sub_meshes.append(
            {
                "indices": np.array(submesh.triangles, dtype=np.uint32) + vertex_offset,
                "index_count": len(submesh.triangles),
                "material_id": submesh.material_id,
                "material_name": material.name if material else f"Material_{submesh.material_id}",
                "texture_name": material.texture_names[0] if material and material.texture_names else None,
            }
        )
        vertex_offset += len(submesh.vertices)

    renderable.has_bone_weights = has_bone_weights
    return renderable


def extract_renderable_data(
        asset: CharacterAsset,
) -> Tuple[List[RenderableMesh], List[pyrr.Matrix44]]:
    """
    Merges every mesh of an assembled character for rendering.

    Returns:
        Tuple[List[RenderableMesh], List[pyrr.Matrix44]]:
        - One renderable mesh per Cal3D mesh, in manifest order.
        - The skeleton's bind poses indexed by bone id (empty without a skeleton).
    """
    renderable_meshes = [
        merge_mesh(mesh, asset.skeleton, asset.materials) for mesh in asset.meshes
    ]
    bind_poses = build_bind_poses(asset.skeleton)

    DebugConsole.log(f"\n--- Data Extraction Summary for: {asset.name} ---")
    if renderable_meshes:
        all_positions = np.concatenate([r.vertices for r in renderable_meshes])
        if all_positions.size > 0:
            min_b, max_b = np.min(all_positions, axis=0), np.max(all_positions, axis=0)
            DebugConsole.log(f"[Mesh] Combined BBox Min: {[f'{v:.2f}' for v in min_b]}")
            DebugConsole.log(f"[Mesh] Combined BBox Max: {[f'{v:.2f}' for v in max_b]}")
        for r_mesh in renderable_meshes:
            DebugConsole.log(
                f"  - Mesh '{r_mesh.name}': {len(r_mesh.vertices)} verts, "
                f"{len(r_mesh.sub_meshes)} submeshes, {r_mesh.uv_channel_count} UV channels, "
                f"skinned: {r_mesh.has_bone_weights}"
            )
    if asset.skeleton and asset.skeleton.bones:
        DebugConsole.log(f"[Skeleton] Found {len(asset.skeleton.bones)} bones.")
        for root in asset.skeleton.root_bones():
            DebugConsole.log(f"  - Root Bone '{root.name}' (idx {root.id})")
    for animation in asset.animations:
        DebugConsole.log(
            f"[Animation] '{animation.name}': {animation.duration:.2f}s, {len(animation.tracks)} tracks"
        )
    if asset.path:
        DebugConsole.log(f"[Source] {os.path.abspath(asset.path)}")
    DebugConsole.log("--- End of Extraction Summary ---\n")

    return renderable_meshes, bind_poses
