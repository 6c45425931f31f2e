from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

STATUS_IDLE = ""
STATUS_NEW_PHOTO = "new photo detected…"
STATUS_MOSAIC_FULL = "mosaic full"
STATUS_CONNECTION_LOST = "connection lost, retrying…"
STATUS_DEGRADED = "connection lost, polling only"
STATUS_RESTORED = "restored {count} photos from previous session"
STATUS_RESTORE_FAILED = "failed to restore previous mosaic state"


class ReconcilerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    ASSIGNING = "assigning"
    PERSISTING = "persisting"
    FULL = "full"
    STOPPED = "stopped"


class BridgeState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RETRYING = "retrying"
    DEGRADED = "degraded"
    CLOSED = "closed"


class MosaicState(BaseModel):
    """Derived view of the engine. Only trustworthy once restoration has completed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cols: int
    rows: int
    tile_size: int
    total_tiles: int
    current_index: int
    tile_order: List[int]
    tiles: Dict[int, str] = {}
    restored: bool = False
    reconciler: ReconcilerState = ReconcilerState.IDLE
    connection: BridgeState = BridgeState.DISCONNECTED
    status: str = STATUS_IDLE


class RestoreReport(BaseModel):
    """Outcome of replaying committed photos onto a fresh grid"""

    restored: int = 0
    assignments: Dict[int, str] = {}
    stale: List[str] = []
    conflicting: List[str] = []
