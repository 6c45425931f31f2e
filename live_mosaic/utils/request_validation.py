import time
import uuid

from fastapi import HTTPException


def validate_request_id(id_string: str, id_label: str) -> str:
    stripped_id = str(id_string).strip()
    if not id_format_is_valid(stripped_id):
        raise HTTPException(
            status_code=400,
            detail=f"{id_label} id ({id_string}) has to be of format UUID4!",
        )
    return stripped_id


def id_format_is_valid(id_string: str) -> bool:
    try:
        uuid.UUID(id_string)
        return True
    except ValueError:
        return False


def generate_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)
