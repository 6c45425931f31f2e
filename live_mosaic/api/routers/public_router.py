import asyncio
import logging
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import JSONResponse, Response

from live_mosaic.api.dependencies import get_context, get_engine
from live_mosaic.services.mosaic_context import MosaicContext
from live_mosaic.services.mosaic_engine import MosaicEngine
from live_mosaic.services.mosaic_rendering import render_mosaic
from live_mosaic.services.pubsub import (
    MOSAIC_CHANGED_EVENT,
    MOSAIC_CHANNEL,
    TILE_ASSIGNED_EVENT,
)
from live_mosaic.utils.image_processing import pil2bytes
from live_mosaic.utils.request_validation import now_ms, validate_request_id
from live_mosaic.utils.version import version

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", name="get_health", summary="Service and mosaic engine status.")
async def get_health(context: MosaicContext = Depends(get_context)) -> JSONResponse:
    engine = context.engine
    return JSONResponse(
        content={
            "status": "ok",
            "version": version(),
            "timestamp": now_ms(),
            "mosaic": {
                "configured": engine is not None,
                "restored": engine is not None and engine.restored,
                "connection": engine.bridge.state.value if engine else None,
                "polling": engine is not None and engine.poller.running,
            },
        }
    )


@router.get(
    "/mosaic/state",
    name="get_mosaic_state",
    summary="Get the grid, the tile order and the current tile placements of the mosaic.",
)
async def get_mosaic_state(engine: MosaicEngine = Depends(get_engine)) -> JSONResponse:
    try:
        return JSONResponse(content=engine.state().model_dump(by_alias=True, mode="json"))
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.get("/mosaic/main-image", name="get_main_image", summary="Get the main image of the mosaic as JPEG.")
async def get_main_image(context: MosaicContext = Depends(get_context)) -> Response:
    try:
        image_bytes = await context.management.get_main_image_bytes()
        return Response(content=image_bytes, media_type="image/jpeg")
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.get(
    "/mosaic/current",
    name="get_mosaic_current",
    summary="Get the current state of the mosaic rendered as a JPEG image.",
)
async def get_mosaic_current(
    thumbnail: bool = False,
    context: MosaicContext = Depends(get_context),
    engine: MosaicEngine = Depends(get_engine),
) -> Response:
    try:
        image = await render_mosaic(engine.main_image, engine.canvas, context.blob_store, context.config)
        if thumbnail:
            size = context.config.current_image_thumbnail_size
            image.thumbnail((size, size))
        return Response(content=pil2bytes(image), media_type="image/jpeg")
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.get("/photos", name="list_photos", summary="List the photo records (optionally only used or unused ones).")
async def list_photos(used: Optional[bool] = None, context: MosaicContext = Depends(get_context)) -> JSONResponse:
    try:
        photos = await context.management.get_photos(used)
        return JSONResponse(content={"photos": [p.model_dump(by_alias=True) for p in photos]})
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.post(
    "/photos",
    name="post_photo",
    summary="Add a captured photo to the queue. It will be placed on the next free tile of the mosaic.",
)
async def post_photo(
    file: UploadFile = File(..., description="The captured photo."),
    timestamp: Optional[int] = Form(None, ge=0, description="Capture time in ms since epoch (defaults to now)."),
    context: MosaicContext = Depends(get_context),
) -> JSONResponse:
    try:
        image_bytes = await file.read()
        if not image_bytes:
            raise HTTPException(status_code=400, detail="No photo data provided.")
        photo = await context.management.add_photo(image_bytes, file.filename or "photo.jpg", timestamp)
        return JSONResponse(content={"msg": "Photo queued!", "photo": photo.model_dump(by_alias=True)})
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.get("/photos/{photo_id}", name="get_photo", summary="Get a captured photo as JPEG.")
async def get_photo(photo_id: str, context: MosaicContext = Depends(get_context)) -> Response:
    try:
        p_id = validate_request_id(photo_id, "photo")
        image_bytes = await context.management.get_photo_bytes(p_id)
        return Response(content=image_bytes, media_type="image/jpeg")
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.websocket("/mosaic/events")
async def mosaic_events(websocket: WebSocket):
    """
    Live feed for viewer displays. Sends the full state on connect, then every tile placement and every
    main image change/reset. Sending "refresh" makes the engine check the photo queue right away.
    """
    context: MosaicContext = websocket.app.state.context
    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()

    async def forward_tile(payload: dict):
        await queue.put({"type": TILE_ASSIGNED_EVENT, **payload})

    async def forward_change(payload: dict):
        await queue.put({"type": MOSAIC_CHANGED_EVENT, **payload})

    unsubscribe_tiles = await context.pubsub.subscribe(MOSAIC_CHANNEL, TILE_ASSIGNED_EVENT, forward_tile)
    unsubscribe_changes = await context.pubsub.subscribe(MOSAIC_CHANNEL, MOSAIC_CHANGED_EVENT, forward_change)

    async def pump():
        engine = context.engine
        state = engine.state().model_dump(by_alias=True, mode="json") if engine is not None else None
        await websocket.send_json({"type": "state", "state": state})
        while True:
            await websocket.send_json(await queue.get())

    pump_task = asyncio.ensure_future(pump())
    try:
        while True:
            message = await websocket.receive_text()
            if message.strip() == "refresh":
                await context.refresh()
    except WebSocketDisconnect:
        logger.info("Viewer disconnected")
    finally:
        pump_task.cancel()
        unsubscribe_tiles()
        unsubscribe_changes()
