"""
Cal3D character configuration (*.cfg) files.

A configuration file lists the skeleton, meshes, animations and materials of
one character as `key = value` lines, together with the scale all positions
are multiplied by. File names are relative to the configuration file.
"""
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from cal3d.cal3d_parser import (
    UnrecognizedFileError,
    read_animation,
    read_material,
    read_mesh,
    read_skeleton,
)
from cal3d.character import CharacterAsset, assemble_character
from cal3d.debug_console import DebugConsole
from cal3d.xrf_parser import read_material_xml

XML_MATERIAL_EXTENSION = ".xrf"


@dataclass
class CharacterManifest:
    name: str
    path: str
    scale: float = 1.0
    skeleton: Optional[str] = None
    meshes: List[str] = field(default_factory=list)
    animations: List[str] = field(default_factory=list)
    materials: List[str] = field(default_factory=list)

    def resolve(self, filename: str) -> str:
        return os.path.join(self.path, filename)


def parse_manifest(lines, path="", name="") -> CharacterManifest:
    manifest = CharacterManifest(name=name, path=path)
    for line in lines:
        comment = line.find("#")
        if comment == 0:
            continue
        if comment > 0:
            line = line[:comment]
        separator = line.find("=")
        if separator < 0:
            continue
        key = line[:separator].strip().lower()
        value = line[separator + 1:].strip()

        if key == "scale":
            try:
                manifest.scale = float(value)
            except ValueError:
                DebugConsole.warning(
                    f"Ignoring malformed scale '{value}', keeping {manifest.scale}"
                )
        elif key == "skeleton":
            manifest.skeleton = value
        elif key == "mesh":
            manifest.meshes.append(value)
        elif key == "animation":
            manifest.animations.append(value)
        elif key == "material":
            manifest.materials.append(value)
        else:
            DebugConsole.log(f"Skipping unknown configuration key: {key}")
    return manifest


def read_manifest(filepath) -> CharacterManifest:
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")
    with open(filepath, "r", encoding="latin-1") as f:
        return parse_manifest(
            f,
            path=os.path.dirname(os.path.abspath(filepath)),
            name=os.path.splitext(os.path.basename(filepath))[0],
        )


def material_decoder_for(filename):
    """The XML reader for *.xrf, the binary reader for anything else."""
    if os.path.splitext(filename)[1].lower() == XML_MATERIAL_EXTENSION:
        return read_material_xml
    return read_material


def load_character(
        filepath, max_workers=None, skip_unrecognized=False
) -> CharacterAsset:
    """
    Decode every file a configuration references and assemble the character.

    Files are decoded concurrently; assembly waits for all of them. A file that
    is not of the kind it was listed as raises UnrecognizedFileError, unless
    `skip_unrecognized` is set, in which case such meshes and animations are
    dropped. The skeleton and materials are never dropped since mesh and track
    indices refer to them by position.
    """
    manifest = read_manifest(filepath)
    scale = manifest.scale

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        skeleton_future = None
        if manifest.skeleton:
            skeleton_future = executor.submit(
                read_skeleton, manifest.resolve(manifest.skeleton), scale
            )
        mesh_futures = [
            (f, executor.submit(read_mesh, manifest.resolve(f), scale))
            for f in manifest.meshes
        ]
        animation_futures = [
            (f, executor.submit(read_animation, manifest.resolve(f), scale))
            for f in manifest.animations
        ]
        material_futures = [
            (f, executor.submit(material_decoder_for(f), manifest.resolve(f)))
            for f in manifest.materials
        ]

        skeleton = None
        if skeleton_future is not None:
            skeleton = skeleton_future.result()
            if skeleton is None:
                raise UnrecognizedFileError(
                    f"{manifest.skeleton} is not a Cal3D skeleton file"
                )

        def _collect(futures, kind, droppable):
            results = []
            for filename, future in futures:
                result = future.result()
                if result is None:
                    if not (droppable and skip_unrecognized):
                        raise UnrecognizedFileError(
                            f"{filename} is not a Cal3D {kind} file"
                        )
                    DebugConsole.warning(f"Skipping {filename}: not a Cal3D {kind} file")
                    continue
                results.append(result)
            return results

        meshes = _collect(mesh_futures, "mesh", True)
        animations = _collect(animation_futures, "animation", True)
        materials = _collect(material_futures, "material", False)

    return assemble_character(
        skeleton,
        meshes,
        animations,
        materials,
        scale=scale,
        path=manifest.path,
        name=manifest.name,
    )
