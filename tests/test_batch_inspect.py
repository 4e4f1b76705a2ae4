import json

from batch_inspect_cal3d import main
from tests import builders as b


def test_batch_report(tmp_path, capsys):
    input_folder = tmp_path / "input"
    character = input_folder / "hero"
    character.mkdir(parents=True)
    (character / "hero.csf").write_bytes(b.simple_skeleton_file())
    (character / "body.cmf").write_bytes(b.mesh_file([
        b.submesh(0, [b.vertex(pos=(0.0, 0.0, 1.0), weights=[(1, 0.6), (2, 0.6)]), b.vertex(), b.vertex()],
                  [(0, 1, 2)], uv_count=0),
    ]))
    (character / "skin.crf").write_bytes(b.material_file(textures=["skin.tga", "gone.tga"]))
    (character / "skin.tga").write_bytes(b"")
    (character / "hero.cfg").write_text(
        "skeleton = hero.csf\nmesh = body.cmf\nmaterial = skin.crf\n"
    )
    (input_folder / "broken.cfg").write_text("skeleton = missing.csf\n")

    output_folder = tmp_path / "output"
    main([str(input_folder), str(output_folder)])

    report = json.loads((output_folder / "cal3d_report.json").read_text())
    assert len(report["failures"]) == 1
    assert report["failures"][0]["file"].endswith("broken.cfg")

    (hero,) = report["characters"]
    assert hero["name"] == "hero"
    assert hero["bones"] == 3
    assert hero["textures_found"] == ["skin.tga"]
    assert hero["textures_missing"] == ["gone.tga"]
    body = hero["meshes"][0]
    assert body["vertices"] == 3
    assert body["triangles"] == 1
    assert body["skinned"] is True
    assert abs(body["max_weight_sum"] - 1.2) < 1e-6
    assert body["bbox_max"] == [0.0, 1.0, 0.0]

    out = capsys.readouterr().out
    assert "Completed: 1/2 files" in out


def test_malformed_xml_material_is_reported_not_fatal(tmp_path, capsys):
    input_folder = tmp_path / "input"
    for name in ("bad", "good"):
        character = input_folder / name
        character.mkdir(parents=True)
        (character / "hero.csf").write_bytes(b.simple_skeleton_file())
    (input_folder / "bad" / "skin.xrf").write_text(
        '<HEADER MAGIC="XRF" VERSION="900"/><MATERIAL><MAP>a</MATERIAL>'
    )
    (input_folder / "bad" / "bad.cfg").write_text("skeleton = hero.csf\nmaterial = skin.xrf\n")
    (input_folder / "good" / "good.cfg").write_text("skeleton = hero.csf\n")

    output_folder = tmp_path / "output"
    main([str(input_folder), str(output_folder)])

    report = json.loads((output_folder / "cal3d_report.json").read_text())
    assert [c["name"] for c in report["characters"]] == ["good"]
    assert report["failures"][0]["file"].endswith("bad.cfg")
    assert "Completed: 1/2 files" in capsys.readouterr().out
