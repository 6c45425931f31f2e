""" Main Server Script"""

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware import Middleware
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from live_mosaic.api.api import api
from live_mosaic.models.app_config import get_config
from live_mosaic.services.mosaic_context import MosaicContext
from live_mosaic.utils.version import version

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# Check and display important api settings
def check_config() -> str:
    documentation_url = None
    if get_config().enable_documentation:
        documentation_url = "/documentation"
        print("Documentation endpoint: ENABLED")
    else:
        print("Documentation endpoint: DISABLED")

    if get_config().enable_auth:
        if not get_config().jwt_secret:
            raise ValueError("Please set JWT_SECRET via '.env' file or environment variable!")
        print("Authentication for admin endpoints: ENABLED")
    else:
        print("Authentication for admin endpoints: DISABLED")

    if not get_config().sqlite_path:
        raise ValueError("Please set SQLITE_PATH via '.env' file or environment variable!")
    if get_config().poll_interval_seconds > 0:
        print(f"Photo queue polling: every {get_config().poll_interval_seconds}s")
    else:
        print("Photo queue polling: DISABLED (push notifications only)")
    print(f"Canvas: {get_config().canvas_width}x{get_config().canvas_height}px")
    return documentation_url


docs_url = check_config()

# setup CORS middleware
middleware = [
    Middleware(
        CORSMiddleware,
        allow_origins=get_config().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
]

# setup api server
app = FastAPI(
    title="Live Mosaic API",
    version=version(),
    middleware=middleware,
    docs_url=docs_url,
    redoc_url=None,
)
app.include_router(router=api)
Instrumentator().instrument(app).expose(app, include_in_schema=False)


@app.on_event("startup")
async def mosaic_connect():
    print(f"Running live-mosaic service (v{version()})...")
    app.state.context = MosaicContext(get_config())
    await app.state.context.init()


@app.on_event("shutdown")
async def mosaic_disconnect():
    print("Stopping live-mosaic service...")
    await app.state.context.teardown()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8111, workers=1)
