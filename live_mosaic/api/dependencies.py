from fastapi import HTTPException, Request

from live_mosaic.services.mosaic_context import MosaicContext
from live_mosaic.services.mosaic_engine import MosaicEngine


def get_context(request: Request) -> MosaicContext:
    return request.app.state.context


def get_engine(request: Request) -> MosaicEngine:
    engine = get_context(request).engine
    if engine is None:
        raise HTTPException(status_code=404, detail="No main image has been uploaded yet.")
    return engine
