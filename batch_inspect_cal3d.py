"""
Batch Cal3D Character Inspector
Loads every character configuration (*.cfg) under a folder, validates it and
writes a JSON report with mesh, skeleton, animation and texture statistics
"""
import os
import sys
import json
import logging
import argparse
from pathlib import Path

import numpy as np

from cal3d.character import extract_renderable_data
from cal3d.manifest import load_character


class Cal3DBatchInspector:
    """Loads Cal3D characters and reports on their contents"""

    # Default paths
    DEFAULT_INPUT = "input"
    DEFAULT_OUTPUT = "output"

    def __init__(self, input_folder=None, output_folder=None, max_workers=None):
        self.input_folder = Path(input_folder or self.DEFAULT_INPUT)
        self.output_folder = Path(output_folder or self.DEFAULT_OUTPUT)
        self.max_workers = max_workers
        self.output_folder.mkdir(parents=True, exist_ok=True)

    def find_textures(self, character):
        """Split the character's texture references into found and missing"""
        found, missing = [], []
        for material in character.materials:
            for texture_name in material.texture_names:
                if os.path.isfile(os.path.join(character.path, texture_name)):
                    found.append(texture_name)
                else:
                    missing.append(texture_name)
        return found, missing

    def inspect_character(self, cfg_path):
        """Load one configuration file and summarise it"""
        character = load_character(str(cfg_path), max_workers=self.max_workers)
        meshes, bind_poses = extract_renderable_data(character)
        found, missing = self.find_textures(character)

        report = {
            "name": character.name,
            "scale": character.scale,
            "bones": len(bind_poses),
            "meshes": [],
            "animations": [
                {"name": a.name, "duration": a.duration, "tracks": len(a.tracks)}
                for a in character.animations
            ],
            "materials": [m.name for m in character.materials],
            "textures_found": found,
            "textures_missing": missing,
        }
        for mesh in meshes:
            entry = {
                "name": mesh.name,
                "vertices": int(len(mesh.vertices)),
                "triangles": int(sum(s["index_count"] for s in mesh.sub_meshes) // 3),
                "submeshes": len(mesh.sub_meshes),
                "uv_channels": mesh.uv_channel_count,
                "skinned": mesh.has_bone_weights,
            }
            if len(mesh.vertices):
                entry["bbox_min"] = [float(v) for v in mesh.vertices.min(axis=0)]
                entry["bbox_max"] = [float(v) for v in mesh.vertices.max(axis=0)]
                entry["max_weight_sum"] = float(
                    np.max(np.sum(mesh.skinning_data.bone_weights, axis=1))
                )
            report["meshes"].append(entry)
        return report

    def batch_process(self):
        """Process all configuration files"""
        cfg_files = sorted(self.input_folder.rglob("*.cfg"))

        if not cfg_files:
            print(f"No Cal3D configuration files found in {self.input_folder}")
            return

        print(f"Found {len(cfg_files)} configuration files")
        print()

        reports = []
        failures = []
        for idx, cfg_file in enumerate(cfg_files, 1):
            print(f"[{idx}/{len(cfg_files)}] Processing: {cfg_file.name}")
            try:
                report = self.inspect_character(cfg_file)
            except Exception as e:
                print(f"  [ERROR] {e}")
                failures.append({"file": str(cfg_file), "error": str(e)})
                continue
            reports.append(report)
            print(
                f"  [OK] {len(report['meshes'])} meshes, {report['bones']} bones, "
                f"{len(report['animations'])} animations"
            )
            for texture_name in report["textures_missing"]:
                print(f"  Warning: missing texture {texture_name}")

        report_path = self.output_folder / "cal3d_report.json"
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump({"characters": reports, "failures": failures}, f, indent=2)

        print(f"\n{'='*60}")
        print(f"Completed: {len(reports)}/{len(cfg_files)} files")
        print(f"Report: {report_path}")
        print(f"{'='*60}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Batch inspect Cal3D characters')
    parser.add_argument('input_folder', nargs='?', default=None,
                        help=f'Folder containing *.cfg files (default: {Cal3DBatchInspector.DEFAULT_INPUT})')
    parser.add_argument('output_folder', nargs='?', default=None,
                        help=f'Folder to write the report to (default: {Cal3DBatchInspector.DEFAULT_OUTPUT})')
    parser.add_argument('--workers', '-w', type=int, default=None,
                        help='Number of files decoded in parallel per character')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Print decoder debug output')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    inspector = Cal3DBatchInspector(args.input_folder, args.output_folder, args.workers)
    inspector.batch_process()


if __name__ == "__main__":
    sys.exit(main())
