import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.openapi.models import APIKey
from fastapi.responses import JSONResponse

from live_mosaic.api.dependencies import get_context
from live_mosaic.exceptions import InvalidGridRequest
from live_mosaic.services.auth import AuthService
from live_mosaic.services.mosaic_context import MosaicContext
from live_mosaic.services.pubsub import MOSAIC_CHANGED_EVENT, MOSAIC_CHANNEL

router = APIRouter()
auth_service = AuthService()


@router.post(
    "/mosaic/main-image",
    name="post_main_image",
    summary="Upload a new main image. The tile grid is planned for the requested number of tiles and the mosaic "
    "restarts on it.",
)
async def post_main_image(
    file: UploadFile = File(..., description="The image that shall be revealed by the mosaic."),
    target_tiles: Optional[int] = Form(
        None,
        description="The desired number of tiles (between MIN_TARGET_TILES and MAX_TARGET_TILES). The actual number "
        "might differ since the tiles are square and have to fit the canvas.",
    ),
    seed: Optional[int] = Form(None, description="Seed for the tile order (for reproducible reveals)."),
    context: MosaicContext = Depends(get_context),
    key: APIKey = Depends(auth_service.admin_auth),
) -> JSONResponse:
    # pylint: disable=unused-argument
    config = context.config
    target = config.default_target_tiles if target_tiles is None else target_tiles
    if not config.min_target_tiles <= target <= config.max_target_tiles:
        raise HTTPException(
            status_code=422,
            detail=f"target_tiles has to be between {config.min_target_tiles} and {config.max_target_tiles}.",
        )
    image_bytes = await file.read()
    try:
        main_image = await context.management.create_main_image(
            image_bytes, file.filename or "main-image.jpg", target, seed
        )
        await context.start_engine(main_image)
        await context.pubsub.publish(MOSAIC_CHANNEL, MOSAIC_CHANGED_EVENT, {"reason": "main-image"})
        metadata = main_image.model_dump(by_alias=True, exclude={"tile_order"})
        return JSONResponse(content={"msg": "Main image stored!", "mainImage": metadata})
    except InvalidGridRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.post(
    "/mosaic/reset",
    name="reset_mosaic",
    summary="Remove all photos from the mosaic and reshuffle the tile order. The main image is kept.",
)
async def reset_mosaic(
    context: MosaicContext = Depends(get_context), key: APIKey = Depends(auth_service.admin_auth)
) -> JSONResponse:
    # pylint: disable=unused-argument
    try:
        context.stop_engine()
        main_image = await context.management.reset_mosaic()
        if main_image is not None:
            await context.start_engine(main_image)
        await context.pubsub.publish(MOSAIC_CHANNEL, MOSAIC_CHANGED_EVENT, {"reason": "reset"})
        return JSONResponse(content={"msg": "Mosaic reset!"})
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.delete(
    "/mosaic",
    name="delete_mosaic",
    summary="Remove all photos and the main image. This can not be undone.",
)
async def delete_mosaic(
    context: MosaicContext = Depends(get_context), key: APIKey = Depends(auth_service.admin_auth)
) -> JSONResponse:
    # pylint: disable=unused-argument
    try:
        context.stop_engine()
        await context.management.delete_mosaic()
        await context.pubsub.publish(MOSAIC_CHANNEL, MOSAIC_CHANGED_EVENT, {"reason": "deleted"})
        return JSONResponse(content={"msg": "Mosaic deleted!"})
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc


@router.post(
    "/mosaic/refresh",
    name="refresh_mosaic",
    summary="Check the photo queue now instead of waiting for the next notification or poll.",
)
async def refresh_mosaic(
    context: MosaicContext = Depends(get_context), key: APIKey = Depends(auth_service.admin_auth)
) -> JSONResponse:
    # pylint: disable=unused-argument
    try:
        if context.engine is None:
            raise HTTPException(status_code=404, detail="No main image has been uploaded yet.")
        ran = await context.refresh()
        return JSONResponse(content={"msg": "Queue checked!" if ran else "Queue is already being processed."})
    except HTTPException:
        raise
    except BaseException as exc:
        logging.error("", exc_info=True)
        raise HTTPException(status_code=500, detail="An unknown server error occurred") from exc
