import logging
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import *

from savebag import *

logger = logging.getLogger("savebag")

COMPRESSION_CHOICES = ['auto', 'none', 'zlib', 'deflate', 'gzip', 'lz4', 'zstd']


def _describe(entry: PropertyEntry) -> str:
    v = entry.value
    label = f"{entry.name}[{entry.index}]" if entry.index else str(entry.name)
    if isinstance(v, Struct):
        return f"{label}: {entry.type_name}<{v.struct_type}>"
    if isinstance(v, Array):
        if v.inner_type == "ByteProperty":
            return f"{label}: {entry.type_name}<{v.inner_type}> <{len(v.elements)} bytes>"
        return f"{label}: {entry.type_name}<{v.inner_type}> x {len(v.elements)}"
    if isinstance(v, Map):
        return f"{label}: {entry.type_name}<{v.key_type}, {v.value_type}> x {len(v.entries)}"
    if isinstance(v, Set):
        return f"{label}: {entry.type_name}<{v.inner_type}> x {len(v.elements)}"
    if isinstance(v, Enum):
        return f"{label}: {entry.type_name} = {v.enum_type}::{v.member}"
    if isinstance(v, Text):
        return f"{label}: {entry.type_name} = {v.source or v.invariant!r}"
    return f"{label}: {entry.type_name} = {v!r}"


def print_archive(archive: Archive, indent: int = 0) -> None:
    prefix = ' ' * indent
    print(f"{prefix}Archive v{archive.version}: {len(archive.objects)} object(s), {len(archive.names)} name(s)")
    for i, obj in enumerate(archive.objects):
        print(f"{prefix}  #{i} {obj.object_path}")
        print_properties(obj.properties or [], indent + 4)
        for c in obj.components or []:
            print(f"{prefix}    <{c.key}>")
            print_properties(c.properties or [], indent + 6)


def print_properties(properties: List[PropertyEntry], indent: int = 0) -> None:
    prefix = ' ' * indent
    for prop in properties:
        print(f"{prefix}{_describe(prop)}")
        v = prop.value
        if isinstance(v, Struct):
            if isinstance(v.value, list):
                print_properties(v.value, indent + 4)
            elif isinstance(v.value, Archive):
                print_archive(v.value, indent + 4)
            elif isinstance(v.value, PersistenceContainer):
                print(f"{prefix}    Container v{v.value.version}: {len(v.value.actors)} actor(s)")
                for actor in v.value.actors:
                    print(f"{prefix}      actor {actor.unique_id}")
                    print_archive(actor.archive, indent + 8)
        elif isinstance(v, Array) and v.inner_type == "StructProperty":
            for i, element in enumerate(v.elements):
                print(f"{prefix}    [{i}]")
                if isinstance(element, list):
                    print_properties(element, indent + 8)


def show(doc: Document) -> None:
    print("Header:")
    for key, value in doc.header.items():
        if key == "custom_versions":
            print(f"  {key}: {len(value)} entries")
        else:
            print(f"  {key}: {value}")
    if doc.archive is not None:
        print_archive(doc.archive)
    else:
        print_properties(doc.properties)


def _default_output(path: Path, command: str) -> Path:
    if command == "decode":
        return path.with_name(path.name + ".json")
    if path.suffix == ".json":
        return path.with_suffix("")
    return path.with_name(path.name + ".sav")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = ArgumentParser(prog="savebag", description="Unreal Engine save file codec")
    parser.add_argument('--verbose', '-v', action='store_true', help='Log debug details')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('decode', help='Decode a save file to JSON')
    p.add_argument('input', type=Path, help='Path to the save file')
    p.add_argument('--output', '-o', type=Path, help='JSON output path (default: <input>.json)')
    p.add_argument('--compression', '-c', default='auto', choices=COMPRESSION_CHOICES,
                   help='Whole-file compression of the input (default: auto)')
    p.add_argument('--no-verify-crc', action='store_true', help='Skip chunk checksum verification')

    p = sub.add_parser('encode', help='Encode a JSON document back to a save file')
    p.add_argument('input', type=Path, help='Path to the JSON document')
    p.add_argument('--output', '-o', type=Path, help='Save file output path (default: input without .json)')

    p = sub.add_parser('show', help='Print the header and property tree of a save file')
    p.add_argument('input', type=Path, help='Path to the save file')
    p.add_argument('--compression', '-c', default='auto', choices=COMPRESSION_CHOICES,
                   help='Whole-file compression of the input (default: auto)')

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.command == 'encode':
            doc = loads(args.input.read_text(encoding='utf-8'))
            output = args.output or _default_output(args.input, args.command)
            write_savefile(output, doc)
            logger.info("wrote %s", output)
            return 0

        doc = load_savefile(args.input, compression=args.compression,
                            verify_crc=not getattr(args, 'no_verify_crc', False))
        if args.command == 'show':
            show(doc)
            return 0
        output = args.output or _default_output(args.input, args.command)
        output.write_text(dumps(doc), encoding='utf-8')
        logger.info("wrote %s", output)
        return 0
    except (SaveFormatError, OSError) as e:
        print(f"error: {e.__class__.__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
