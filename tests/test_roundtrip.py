"""Decode/encode properties over generated property bags."""
import struct

from hypothesis import given, settings
from hypothesis import strategies as st

import savebag
from savebag.document import Array, Document, FName, Map, PropertyEntry, Struct

names = st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=12).filter(
    lambda s: s != "None")
strings = st.one_of(st.none(), st.text(max_size=20).filter(lambda s: "\x00" not in s))
float32 = st.floats(width=32, allow_nan=False)
float64 = st.floats(allow_nan=False)


def ints(bits, signed=True):
    if signed:
        return st.integers(-2 ** (bits - 1), 2 ** (bits - 1) - 1)
    return st.integers(0, 2 ** bits - 1)


scalars = st.one_of(
    st.tuples(st.just("Int8Property"), ints(8)),
    st.tuples(st.just("IntProperty"), ints(32)),
    st.tuples(st.just("Int64Property"), ints(64)),
    st.tuples(st.just("UInt32Property"), ints(32, False)),
    st.tuples(st.just("UInt64Property"), ints(64, False)),
    st.tuples(st.just("FloatProperty"), float32),
    st.tuples(st.just("DoubleProperty"), float64),
    st.tuples(st.just("BoolProperty"), st.booleans()),
    st.tuples(st.just("StrProperty"), strings),
    st.tuples(st.just("NameProperty"), names.map(FName)),
)


@st.composite
def entries(draw, depth=2):
    kind = draw(st.sampled_from(["scalar", "array", "map", "struct"] if depth else ["scalar"]))
    name = FName(draw(names))
    if kind == "scalar":
        type_name, value = draw(scalars)
        return PropertyEntry(name, type_name, value)
    if kind == "array":
        values = draw(st.lists(ints(32), max_size=5))
        return PropertyEntry(name, "ArrayProperty", Array("IntProperty", values))
    if kind == "map":
        pairs = draw(st.lists(st.tuples(strings, float32), max_size=4))
        return PropertyEntry(name, "MapProperty", Map("StrProperty", "FloatProperty", pairs))
    inner = draw(st.lists(entries(depth=depth - 1), min_size=0, max_size=3))
    return PropertyEntry(name, "StructProperty", Struct(FName("Generated"), inner))


bags = st.lists(entries(), min_size=1, max_size=6)


@settings(max_examples=60, deadline=None)
@given(bags)
def test_encode_decode_round_trip(properties):
    doc = Document({"format": "bag"}, properties)
    data = savebag.encode(doc)
    decoded = savebag.decode(data)
    assert decoded.properties == properties
    assert savebag.encode(decoded) == data


@settings(max_examples=60, deadline=None)
@given(bags)
def test_json_round_trip(properties):
    doc = Document({"format": "bag"}, properties)
    data = savebag.encode(doc)
    assert savebag.encode(savebag.loads(savebag.dumps(doc))) == data


@given(st.binary(max_size=64))
def test_garbage_never_crashes_outside_the_error_hierarchy(data):
    try:
        savebag.decode(b'\x05\x00\x00\x00Name\x00' + data, compression="none")
    except savebag.SaveFormatError:
        pass


def test_float32_bits_survive():
    raw = struct.pack('<f', 0.1)
    value = struct.unpack('<f', raw)[0]
    doc = Document({"format": "bag"}, [PropertyEntry(FName("F"), "FloatProperty", value)])
    decoded = savebag.loads(savebag.dumps(doc))
    assert struct.pack('<f', decoded.properties[0].value) == raw
