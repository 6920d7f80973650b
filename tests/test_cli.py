import json

from savebag.savebag import main
from tests import builders


def test_decode_then_encode(tmp_path, sav_bytes):
    src = tmp_path / "profile.sav"
    src.write_bytes(sav_bytes)

    assert main(["decode", str(src)]) == 0
    out = tmp_path / "profile.sav.json"
    doc = json.loads(out.read_text(encoding="utf-8"))
    assert doc["header"]["format"] == "sav"

    src.unlink()
    assert main(["encode", str(out)]) == 0
    assert src.read_bytes() == sav_bytes


def test_explicit_output(tmp_path, level_bag):
    src = tmp_path / "level.bin"
    src.write_bytes(level_bag)
    dest = tmp_path / "level.json"
    assert main(["decode", str(src), "-o", str(dest)]) == 0
    assert json.loads(dest.read_text())["properties"] == {"Level": {"type": "int32", "value": 7}}


def test_show_prints_tree(tmp_path, gvas_bytes, capsys):
    src = tmp_path / "game.sav"
    src.write_bytes(gvas_bytes)
    assert main(["show", str(src)]) == 0
    out = capsys.readouterr().out
    assert "save_game_class_name: /Script/Game.SaveGame" in out
    assert "Level: IntProperty = 7" in out


def test_codec_error_exits_with_kind(tmp_path, capsys):
    src = tmp_path / "broken.sav"
    src.write_bytes(builders.prop("Level", "IntProperty", builders.i32(7)))
    assert main(["decode", str(src)]) == 1
    assert "error: TruncatedInputError" in capsys.readouterr().err


def test_malformed_json_exits_with_kind(tmp_path, capsys):
    src = tmp_path / "bad.json"
    src.write_text('{"header": {"format": "bag"}, "properties": {"Level": {"type": "int32"}}}')
    assert main(["encode", str(src)]) == 1
    assert "error: MalformedJsonError" in capsys.readouterr().err


def test_incomplete_header_exits_with_kind(tmp_path, gvas_bytes, capsys):
    src = tmp_path / "game.sav"
    src.write_bytes(gvas_bytes)
    assert main(["decode", str(src)]) == 0
    out = tmp_path / "game.sav.json"
    doc = json.loads(out.read_text(encoding="utf-8"))
    del doc["header"]["engine_version"]
    out.write_text(json.dumps(doc), encoding="utf-8")

    assert main(["encode", str(out)]) == 1
    err = capsys.readouterr().err
    assert "error: MalformedJsonError" in err
    assert "header.engine_version" in err
