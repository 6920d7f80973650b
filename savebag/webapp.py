from __future__ import annotations

import logging
import tempfile
import threading
import time
import uuid
from argparse import ArgumentParser
from pathlib import Path
from typing import *

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from savebag import (Archive, Array, Enum, FName, Map, PersistenceContainer, PropertyEntry, SaveFormatError,
                     Set, Struct, Text, UObject, encode, load_savefile, loads, to_json)

logger = logging.getLogger(__name__)

UPLOAD_ROOT = Path(tempfile.gettempdir()) / "savebag_uploads"
UPLOAD_ROOT.mkdir(parents=True, exist_ok=True)
CLEAN_INTERVAL_SECONDS = 300  # every 5 minutes
FILE_TTL_SECONDS = 1800  # 30 minutes
PREVIEW_CHARS = 200


def clean_uploads(now: Optional[float] = None) -> int:
    """Delete uploads older than the TTL; returns how many were removed."""
    now = time.time() if now is None else now
    removed = 0
    for p in UPLOAD_ROOT.glob("*"):
        try:
            if p.is_file() and now - p.stat().st_mtime > FILE_TTL_SECONDS:
                p.unlink(missing_ok=True)
                removed += 1
        except OSError as e:
            logger.warning("could not remove upload %s: %s", p, e)
    if removed:
        logger.info("removed %d expired upload(s)", removed)
    return removed


def _clean_loop() -> None:
    while True:
        try:
            clean_uploads()
        except OSError:
            logger.exception("upload cleanup failed")
        time.sleep(CLEAN_INTERVAL_SECONDS)


def _ensure_cleaner_started(app: FastAPI) -> None:
    # start a background daemon thread once
    if not getattr(app.state, "_cleaner_started", False):
        t = threading.Thread(target=_clean_loop,
                             name="savebag-cleaner", daemon=True)
        t.start()
        app.state._cleaner_started = True


BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

app = FastAPI(title="Save File Inspector", version="0.3.0")
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@app.on_event("startup")
def _startup() -> None:
    _ensure_cleaner_started(app)


def _sanitize_filename(name: str) -> str:
    keep = [c for c in name if c.isalnum() or c in (".", "_", "-")]
    sanitized = "".join(keep) or "upload.sav"
    return sanitized[-100:]


def _preview(s: str) -> str:
    if len(s) > PREVIEW_CHARS:
        s = s[:PREVIEW_CHARS] + "…"
    return f'"{s}"'


def format_value(v: Any) -> Optional[str]:
    """Concise, human-friendly preview of a leaf value."""
    if v is None:
        return "null"
    if isinstance(v, str):
        return _preview(v)
    if isinstance(v, FName):
        return str(v)
    if isinstance(v, Enum):
        return f"{v.enum_type}::{v.member}" if v.enum_type is not None else str(v.member)
    if isinstance(v, Text):
        if v.raw is not None:
            return f"<Text history {v.history}, {len(v.raw)} byte(s)>"
        return _preview(v.source if v.history == 0 else v.invariant or "")
    if isinstance(v, (bytes, bytearray)):
        n = len(v)
        preview = bytes(v[:32]).hex(" ")
        more = f" +{n-32}b" if n > 32 else ""
        return f"{n} bytes: {preview}{more}" if n else "0 bytes"
    return str(v)


def _node(name: str, type: str, meta: str = "", children: Optional[List[Dict[str, Any]]] = None,
          value: Optional[str] = None) -> Dict[str, Any]:
    return {
        "name": name,
        "type": type,
        "meta": meta,
        "children": children if children else None,
        "value": None if children else value,
    }


def _bag_node(name: str, type: str, properties: List[PropertyEntry]) -> Dict[str, Any]:
    return _node(name, type, f"{len(properties)} field(s)", [create_node(p) for p in properties])


def object_nodes(archive: Archive) -> List[Dict[str, Any]]:
    return [_object_node(i, obj) for i, obj in enumerate(archive.objects)]


def _object_node(object_id: int, obj: UObject) -> Dict[str, Any]:
    children = [create_node(p) for p in obj.properties or []]
    for c in obj.components or []:
        if c.variables is not None:
            children.append(_node(c.key, "Variables", f"{len(c.variables)} variable(s)",
                                  [_node(str(v.name), f"var{v.var_type}", value=format_value(v.value))
                                   for v in c.variables]))
        else:
            children.append(_bag_node(c.key, "Component", c.properties or []))
    meta = "not loaded" if not obj.was_loaded else f"{len(obj.properties or [])} propert(ies)"
    return _node(f"#{object_id} {obj.object_path}", "Object", meta, children)


def _struct_children(value: Any) -> Tuple[str, List[Dict[str, Any]], Optional[str]]:
    if isinstance(value, list):
        return f"{len(value)} field(s)", [create_node(f) for f in value], None
    if isinstance(value, Archive):
        return f"{len(value.objects)} object(s)", object_nodes(value), None
    if isinstance(value, PersistenceContainer):
        actors = [_node(f"actor {a.unique_id}", "Actor", f"{len(a.archive.objects)} object(s)",
                        object_nodes(a.archive)) for a in value.actors]
        return f"{len(value.actors)} actor(s), {len(value.dynamic)} dynamic", actors, None
    return f"{len(value)} bytes", [], format_value(value)


def create_node(entry: PropertyEntry) -> Dict[str, Any]:
    v = entry.value
    name = f"{entry.name}[{entry.index}]" if entry.index else str(entry.name)

    if isinstance(v, Struct):
        meta, children, value = _struct_children(v.value)
        return _node(name, f"{entry.type_name}<{v.struct_type}>", meta, children, value)

    if isinstance(v, Array):
        type = f"Array<{v.inner_type}>"
        if v.inner_type == "ByteProperty":
            return _node(name, type, f"{len(v.elements)} bytes", value=format_value(v.elements))
        if v.inner_type == "StructProperty":
            children = []
            for i, element in enumerate(v.elements):
                meta, sub, value = _struct_children(element)
                children.append(_node(f"[{i}]", str(v.struct_type), meta, sub, value))
            return _node(name, type, f"{len(v.elements)} struct(s)", children)
        return _node(name, type, f"x {len(v.elements)}",
                     [_node(f"[{i}]", v.inner_type, value=format_value(e)) for i, e in enumerate(v.elements)])

    if isinstance(v, Map):
        children = []
        for k, val in v.entries:
            if isinstance(val, list):
                children.append(_bag_node(format_value(k), v.value_type, val))
            else:
                children.append(_node(format_value(k), v.value_type, value=format_value(val)))
        return _node(name, f"Map<{v.key_type}, {v.value_type}>", f"{len(v.entries)} entr(ies)", children)

    if isinstance(v, Set):
        children = [_bag_node(f"[{i}]", v.inner_type, e) if isinstance(e, list)
                    else _node(f"[{i}]", v.inner_type, value=format_value(e))
                    for i, e in enumerate(v.elements)]
        return _node(name, f"Set<{v.inner_type}>", f"{len(v.elements)} element(s)", children)

    return _node(name, entry.type_name, value=format_value(v))


@app.get("/")
def index(request: Request):
    return templates.TemplateResponse(request, "index.html", {"request": request})


@app.post("/api/upload")
async def api_upload(file: UploadFile = File(...)) -> JSONResponse:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Missing filename")
    if not file.filename.lower().endswith(".sav"):
        raise HTTPException(
            status_code=400, detail="Please upload a .sav file")

    safe_name = _sanitize_filename(file.filename)
    unique = f"{int(time.time())}_{uuid.uuid4().hex}_{safe_name}"
    dest = UPLOAD_ROOT / unique

    try:
        with dest.open('wb') as f:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                f.write(chunk)
    except OSError as e:
        raise HTTPException(
            status_code=500, detail=f"Failed to save file: {e}")
    finally:
        await file.close()

    try:
        doc = load_savefile(dest)
    except SaveFormatError as e:
        # cleaner will purge the file later
        logger.info("could not decode %s: %s", safe_name, e)
        raise HTTPException(
            status_code=400, detail=f"Parse error ({e.__class__.__name__}): {e}")

    if doc.archive is not None:
        nodes = object_nodes(doc.archive)
    else:
        nodes = [create_node(p) for p in doc.properties]
    return JSONResponse({
        "header": doc.header,
        "properties": nodes,
        "document": to_json(doc),
        "uploaded_path": str(dest),
    })


@app.post("/api/encode")
async def api_encode(request: Request) -> Response:
    body = await request.body()
    try:
        data = encode(loads(body))
    except SaveFormatError as e:
        raise HTTPException(
            status_code=400, detail=f"Encode error ({e.__class__.__name__}): {e}")
    return Response(content=data, media_type="application/octet-stream",
                    headers={"Content-Disposition": 'attachment; filename="savegame.sav"'})


def main() -> None:
    parser = ArgumentParser(prog="savebag_webapp",
                            description="savebag Web App")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000,
                        help="Port to bind (default: 8000)")
    args = parser.parse_args()

    import uvicorn
    uvicorn.run("savebag.webapp:app", host=args.host,
                port=args.port, reload=False, log_level="info")


if __name__ == "__main__":
    main()
