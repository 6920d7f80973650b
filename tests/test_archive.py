import pytest

import savebag
from savebag.archive import PROFILE_CLASS_PATH, VAR_BOOL, VAR_FLOAT, VAR_INT, VAR_NAME, VAR_NONE, WORLD_CLASS_PATH
from savebag.cursor import Reader, Writer
from savebag.document import (Actor, Archive, Component, Document, DynamicActor, FName, PersistenceContainer,
                              PropertyEntry, Struct, Transform, UObject, Variable)
from savebag.errors import SaveFormatError
from savebag.names import NameTable
from tests import builders

TRAILER = b'\x00' * 4


def sav_document(class_path, blob, data_order=None):
    objects = [
        UObject(True, class_path[0], properties=[
            PropertyEntry(FName("SaveData"), "StructProperty", Struct(FName("PersistenceBlob"), blob)),
        ], trailer=TRAILER),
        UObject(True, "/Game/Second", properties=[PropertyEntry(FName("Gold"), "IntProperty", 12)], trailer=TRAILER),
    ]
    archive = Archive(names=["None"], objects=objects, version=5, package_version=(1000, 1009),
                      class_path=class_path, data_order=data_order)
    header = {"format": "sav", "version": 9, "build_number": 42, "chunk_size": 0x20000,
              "compressor": "zlib", "compression_level": None}
    return Document(header, archive=archive)


def inner_archive():
    variables = Component("GlobalVariables", variables_name=FName("Vars"), variables=[
        Variable(FName("Visited"), VAR_BOOL, True),
        Variable(FName("Kills"), VAR_INT, -3),
        Variable(FName("Speed"), VAR_FLOAT, 0.5),
        Variable(FName("Zone"), VAR_NAME, FName("Zone", 2)),
        Variable(FName("Nothing"), VAR_NONE),
    ])
    inventory = Component("Inventory", properties=[PropertyEntry(FName("Slots"), "IntProperty", 4)], trailer=TRAILER)
    obj = UObject(True, "/Game/Inner", properties=[PropertyEntry(FName("Gold"), "IntProperty", 100)],
                  trailer=TRAILER, components=[variables, inventory])
    return Archive(names=["None"], objects=[obj], version=5, package_version=(1000, 1009))


def world_container():
    transform = Transform((0.0, 0.0, 0.0, 1.0), (1.0, 2.0, 3.0), (1.0, 1.0, 1.0))
    actor_archive = Archive(names=["None"], version=5, objects=[
        UObject(True, "/Game/Actor", properties=[PropertyEntry(FName("Health"), "FloatProperty", 50.0)],
                trailer=TRAILER),
    ])
    bare_archive = Archive(names=["None"], version=5, objects=[UObject(True, "/Game/Bare")])
    return PersistenceContainer(
        version=1,
        actors=[Actor(7, transform, actor_archive), Actor(9, None, bare_archive)],
        destroyed=[99, 100],
        dynamic=[DynamicActor(8, transform, ("/Game/Dyn", "Dyn_C"))],
    )


def reencode(doc):
    data = savebag.encode(doc)
    decoded = savebag.decode(data)
    assert savebag.encode(decoded) == data
    return decoded, data


def test_decode_hand_built_sav(sav_bytes):
    doc = savebag.decode(sav_bytes)
    assert doc.header["format"] == "sav"
    assert doc.header["build_number"] == 42
    archive = doc.archive
    assert archive.class_path == ("/Game/Test/BP_Save", "BP_Save_C")
    assert archive.package_version == (1000, 1009)
    first, second = archive.objects
    assert first.object_path == "/Game/Test/BP_Save"
    assert [(str(p.name), p.value) for p in first.properties] == [("Level", 7), ("Score", 1.5)]
    assert first.trailer == TRAILER
    assert not second.was_loaded
    assert second.loaded_name == FName("Level")
    assert second.properties is None
    assert archive.data_order is None
    assert savebag.encode(doc) == sav_bytes


def test_sav_json_round_trip(sav_bytes):
    text = savebag.dumps(savebag.decode(sav_bytes))
    assert savebag.encode(savebag.loads(text)) == sav_bytes


def test_new_names_are_appended(sav_bytes):
    doc = savebag.decode(sav_bytes)
    doc.archive.objects[0].properties.append(PropertyEntry(FName("Fresh"), "IntProperty", 1))
    again = savebag.decode(savebag.encode(doc))
    assert again.archive.names == builders.NAMES + ["Fresh"]
    assert again.archive.objects[0].properties[-1].value == 1


def test_profile_blob_holds_nested_archive():
    doc, data = reencode(sav_document((PROFILE_CLASS_PATH, "BP_RemnantSaveGameProfile_C"), inner_archive()))
    blob = doc.archive.objects[0].properties[0].value.value
    assert isinstance(blob, Archive)
    obj = blob.objects[0]
    assert obj.properties == [PropertyEntry(FName("Gold"), "IntProperty", 100)]
    variables, inventory = obj.components
    assert [(str(v.name), v.value) for v in variables.variables] == [
        ("Visited", True), ("Kills", -3), ("Speed", 0.5), ("Zone", FName("Zone", 2)), ("Nothing", None)]
    assert inventory.properties == [PropertyEntry(FName("Slots"), "IntProperty", 4)]
    assert inventory.trailer == TRAILER
    assert savebag.encode(savebag.loads(savebag.dumps(doc))) == data


def test_world_blob_holds_container():
    doc, data = reencode(sav_document((WORLD_CLASS_PATH, "BP_RemnantSaveGame_C"), world_container()))
    container = doc.archive.objects[0].properties[0].value.value
    assert isinstance(container, PersistenceContainer)
    assert [a.unique_id for a in container.actors] == [7, 9]
    assert container.actors[0].transform.position == (1.0, 2.0, 3.0)
    assert container.actors[1].transform is None
    assert container.actors[0].archive.objects[0].properties[0].value == 50.0
    assert container.destroyed == [99, 100]
    assert container.dynamic[0].class_path == ("/Game/Dyn", "Dyn_C")
    assert savebag.encode(savebag.loads(savebag.dumps(doc))) == data


def test_unknown_class_keeps_blob_raw(caplog):
    doc, _ = reencode(sav_document(("/Game/Other", "Other_C"), b'\x01\x02\x03'))
    assert doc.archive.objects[0].properties[0].value.value == b'\x01\x02\x03'
    assert "unknown save class" in caplog.text


def test_data_order_is_preserved():
    doc, _ = reencode(sav_document(("/Game/Other", "Other_C"), b'', data_order=[1, 0]))
    assert doc.archive.data_order == [1, 0]


def test_bad_data_order():
    doc = sav_document(("/Game/Other", "Other_C"), b'', data_order=[0, 0])
    with pytest.raises(SaveFormatError):
        savebag.encode(doc)


def test_numbered_names():
    table = NameTable(["None", "Actor"])
    data = builders.name_ref(1, 5) + builders.name_ref(0)
    r = Reader(data)
    assert table.read(r) == FName("Actor", 5)
    assert table.read(r) == FName("None")
    w = Writer()
    table.write(w, FName("Actor", 5))
    table.write(w, FName("None"))
    assert w.to_bytes() == data


def test_name_index_out_of_range():
    with pytest.raises(SaveFormatError):
        NameTable(["None"]).read(Reader(builders.name_ref(4)))


def test_bool_variable_keeps_stored_word():
    flags = Component("Variables", variables_name=FName("Flags"), variables=[
        Variable(FName("Odd"), VAR_BOOL, 5),
        Variable(FName("Off"), VAR_BOOL, False),
    ])
    inner = Archive(names=["None"], version=5, package_version=(1000, 1009), objects=[
        UObject(True, "/Game/Inner", properties=[], trailer=TRAILER, components=[flags])])
    doc, data = reencode(sav_document((PROFILE_CLASS_PATH, "BP_RemnantSaveGameProfile_C"), inner))
    variables = doc.archive.objects[0].properties[0].value.value.objects[0].components[0].variables
    assert [v.value for v in variables] == [5, False]
    assert savebag.encode(savebag.loads(savebag.dumps(doc))) == data


def test_duplicate_name_entries_keep_their_index():
    table = NameTable(["None", "Actor", "Actor"])
    data = builders.name_ref(2) + builders.name_ref(1, 3) + builders.name_ref(2, 4)
    r = Reader(data)
    names = [table.read(r) for _ in range(3)]
    assert names == [FName("Actor"), FName("Actor", 3), FName("Actor", 4)]
    assert [n.table_index for n in names] == [2, None, 2]

    w = Writer()
    for n in names:
        table.write(w, n)
    assert w.to_bytes() == data

    as_json = savebag.jsonbridge.fname_to_json(names[0])
    assert as_json == {"value": "Actor", "tableIndex": 2}
    assert savebag.jsonbridge.fname_from_json(as_json).table_index == 2
