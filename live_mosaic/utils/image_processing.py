import io

import cv2
import numpy as np
from PIL import Image, ImageOps


def bytes2pil(byte_arr: bytes) -> Image.Image:
    return Image.open(io.BytesIO(byte_arr))


def pil2bytes(image: Image.Image) -> bytes:
    img_byte_arr = io.BytesIO()
    image.convert("RGB").save(img_byte_arr, format="JPEG")
    return img_byte_arr.getvalue()


def np2pil(array: np.ndarray) -> Image.Image:
    return Image.fromarray(array)


def pil2np(image: Image.Image) -> np.ndarray:
    return np.array(image)


def load_rgb(byte_arr: bytes) -> Image.Image:
    """Decode an uploaded image, honouring the EXIF orientation flag"""
    image = bytes2pil(byte_arr)
    image = ImageOps.exif_transpose(image)
    return image.convert("RGB")


def whiten(image: Image.Image, overlay_brightness: float) -> Image.Image:
    """Cover an image with a nearly opaque white layer, leaving overlay_brightness of the original visible"""
    white = Image.new("RGB", image.size, (255, 255, 255))
    return Image.blend(white, image.convert("RGB"), overlay_brightness)


def center_crop_square(image: Image.Image) -> Image.Image:
    width, height = image.size
    side = min(width, height)
    left = (width - side) // 2
    top = (height - side) // 2
    return image.crop((left, top, left + side, top + side))


def fit_to_canvas(image: Image.Image, width: int, height: int) -> Image.Image:
    """Scale and crop an image so that it covers the canvas completely"""
    return ImageOps.fit(image.convert("RGB"), (width, height), method=Image.Resampling.LANCZOS)


def apply_filter(portrait_image: Image.Image, filter_image: Image.Image, blend_value: float) -> Image.Image:
    """
    Merge a photo with the main image tile it is placed on
    Args:
        portrait_image: The photo, already resized to the tile
        filter_image: The main image tile
        blend_value: The share of the photo in the result (0.5=equal split)

    Returns: The merged tile

    """
    return np2pil(
        cv2.addWeighted(pil2np(portrait_image), blend_value, pil2np(filter_image), 1 - blend_value, 0).astype(np.uint8)
    )
