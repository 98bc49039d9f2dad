"""
Video index, upload and file serving.
Browsing and downloads are public; uploads, edits, deletes and extra-file replacement
need a session token (form field `token` or Bearer header) and ownership of the video id.
"""
import re
from pathlib import Path
from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile, File, status
from fastapi.responses import Response, StreamingResponse, FileResponse
from starlette.concurrency import run_in_threadpool
from vivista.auth import caller_token
from vivista.dependencies import get_query_engine, get_video_asset_manager
from vivista.schemas.video import VideoPage, VideoResponse
from vivista.services.query import QueryEngine
from vivista.services.storage import CHUNK_SIZE, EXTRA_FILENAME_RE
from vivista.services.video_assets import VideoAssetManager

router = APIRouter(tags=["videos"])

DAY_SECONDS = 24 * 60 * 60
RANGE_RE = re.compile(r"bytes=(\d*)-(\d*)")


def _int_or_none(value: str | None) -> int | None:
    """Lenient query int: anything unparsable counts as absent."""
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _byte_range(header: str, size: int) -> tuple[int, int] | None:
    """Inclusive (start, end) for a single `bytes=` range, or None if unsatisfiable."""
    m = RANGE_RE.fullmatch(header.strip())
    if not m or not any(m.groups()):
        return None
    first, last = m.groups()
    if not first:
        start, end = max(size - int(last), 0), size - 1
    else:
        start, end = int(first), min(int(last) if last else size - 1, size - 1)
    if start > end:
        return None
    return start, end


def _read_span(path: Path, start: int, length: int):
    with open(path, "rb") as f:
        f.seek(start)
        while length > 0:
            data = f.read(min(CHUNK_SIZE, length))
            if not data:
                break
            length -= len(data)
            yield data


def _stream_video(path: Path, range_header: str | None) -> Response:
    """200 with the whole file, 206 for a satisfiable Range, 416 otherwise."""
    size = path.stat().st_size
    headers = {"Accept-Ranges": "bytes"}
    if not range_header:
        start, end, code = 0, size - 1, status.HTTP_200_OK
    else:
        span = _byte_range(range_header, size)
        if span is None:
            return Response(
                status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
                headers={"Content-Range": f"bytes */{size}"},
            )
        start, end = span
        code = status.HTTP_206_PARTIAL_CONTENT
        headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    length = end - start + 1
    headers["Content-Length"] = str(length)
    return StreamingResponse(_read_span(path, start, length), status_code=code, media_type="video/mp4", headers=headers)


# ---------- Public index ----------


@router.get("/", response_model=VideoPage)
def list_videos(
    offset: str | None = None,
    count: str | None = None,
    author: str | None = None,
    agedays: str | None = None,
    engine: QueryEngine = Depends(get_query_engine),
):
    """Newest videos first. count is 1-100 (default 10), agedays limits to recent uploads."""
    return engine.list(
        offset=_int_or_none(offset),
        count=_int_or_none(count),
        author=author,
        min_age_days=_int_or_none(agedays),
    )


@router.get("/info/{video_id}", response_model=VideoResponse)
def video_info(video_id: str, engine: QueryEngine = Depends(get_query_engine)):
    """Index entry of a single video."""
    return engine.get(video_id)


# ---------- Owner actions ----------


@router.post("/video")
def upload_video(
    video_id: str = Form(..., alias="id"),
    video: UploadFile = File(...),
    thumb: UploadFile | None = File(None),
    meta: UploadFile | None = File(None),
    token: str = Depends(caller_token),
    manager: VideoAssetManager = Depends(get_video_asset_manager),
):
    """Upload or replace video, thumbnail and metadata for a video id the caller owns (or a new id)."""
    manager.ingest(
        token,
        video_id,
        video.file,
        thumb.file if thumb is not None else None,
        meta.file if meta is not None else None,
    )
    return {}


@router.post("/extras")
async def replace_extras(
    request: Request,
    video_id: str = Form(..., alias="id"),
    token: str = Depends(caller_token),
    manager: VideoAssetManager = Depends(get_video_asset_manager),
):
    """Replace all extra files of a video. Files are sent as form fields extra0, extra1, ..."""
    form = await request.form()
    extras = []
    for key, value in form.multi_items():
        m = EXTRA_FILENAME_RE.match(key)
        if m and hasattr(value, "file"):
            extras.append((int(m.group(1)), value.file))
    await run_in_threadpool(manager.replace_extras, token, video_id, extras)
    return {}


@router.post("/edit", response_model=VideoResponse)
def edit_video(
    video_id: str = Form(..., alias="id"),
    title: str = Form("", max_length=255),
    description: str = Form(""),
    token: str = Depends(caller_token),
    manager: VideoAssetManager = Depends(get_video_asset_manager),
    engine: QueryEngine = Depends(get_query_engine),
):
    manager.edit(token, video_id, title, description)
    return engine.get(video_id)


@router.post("/delete")
def delete_video(
    video_id: str = Form(..., alias="id"),
    token: str = Depends(caller_token),
    manager: VideoAssetManager = Depends(get_video_asset_manager),
):
    """Delete a video with all of its files."""
    manager.delete(token, video_id)
    return {}


# ---------- Public files ----------


@router.get("/video/{video_id}")
def stream_video(
    video_id: str,
    request: Request,
    manager: VideoAssetManager = Depends(get_video_asset_manager),
):
    """Stream the video file. Supports Range requests for seeking."""
    return _stream_video(manager.video_path(video_id), request.headers.get("range"))


@router.get("/meta/{video_id}")
def get_meta(video_id: str, manager: VideoAssetManager = Depends(get_video_asset_manager)):
    return FileResponse(manager.meta_path(video_id), media_type="application/json", filename="meta.json")


@router.get("/thumbnail/{video_id}")
def get_thumbnail(video_id: str, manager: VideoAssetManager = Depends(get_video_asset_manager)):
    return FileResponse(
        manager.thumb_path(video_id),
        media_type="image/jpeg",
        headers={"Cache-Control": f"max-age={DAY_SECONDS}"},
    )


@router.get("/extras")
def list_extras(videoid: str | None = None, manager: VideoAssetManager = Depends(get_video_asset_manager)):
    """Indices of the current extra files of a video."""
    if not videoid:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return manager.extra_indices(videoid)


@router.get("/extra")
def get_extra(
    videoid: str | None = None,
    index: str | None = None,
    manager: VideoAssetManager = Depends(get_video_asset_manager),
):
    extra_index = _int_or_none(index)
    if not videoid or extra_index is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return FileResponse(manager.extra_path(videoid, extra_index), media_type="application/octet-stream")
