"""PNG artifact I/O: Pillow encode/decode, stability-checked reads, atomic publish."""

from __future__ import annotations

import asyncio
import io
import os
import zlib

import numpy as np
from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from constants import PNG_READ_RETRIES, PNG_READ_RETRY_DELAY_MS, PNG_SIZE_SETTLE_MS


class ArtifactReadError(RuntimeError):
    pass


# Messages Pillow/zlib produce for a file caught mid-write
_TRUNCATED_SIGNATURES = (
    "truncated",
    "broken png",
    "cannot identify image file",
    "incomplete",
    "empty artifact",
)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (UnidentifiedImageError, EOFError, zlib.error)):
        return True
    msg = str(exc).lower()
    return any(sig in msg for sig in _TRUNCATED_SIGNATURES)


def encode_png(rgba: np.ndarray) -> bytes:
    img = Image.fromarray(np.ascontiguousarray(rgba, dtype=np.uint8), mode="RGBA")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def decode_png(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return np.array(img.convert("RGBA"), dtype=np.uint8)


def _write_bytes(path: str, data: bytes) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


async def write_png(path: str, rgba: np.ndarray) -> None:
    data = await run_in_threadpool(encode_png, rgba)
    await run_in_threadpool(_write_bytes, path, data)


async def atomic_replace(tmp_path: str, final_path: str) -> None:
    """Publish tmp_path at final_path; readers see either the old or the new file."""
    await run_in_threadpool(os.replace, tmp_path, final_path)


async def publish_png(rgba: np.ndarray, tmp_path: str, final_path: str) -> None:
    await write_png(tmp_path, rgba)
    await atomic_replace(tmp_path, final_path)


async def _stable_size(path: str) -> int | None:
    s1 = (await run_in_threadpool(os.stat, path)).st_size
    if not s1:
        raise ArtifactReadError(f"empty artifact: {path}")
    await asyncio.sleep(PNG_SIZE_SETTLE_MS / 1000.0)
    s2 = (await run_in_threadpool(os.stat, path)).st_size
    return s1 if s1 == s2 else None


async def read_png_bytes_with_retry(
    path: str,
    attempts: int = PNG_READ_RETRIES,
    delay_ms: int = PNG_READ_RETRY_DELAY_MS,
) -> bytes:
    """Read a PNG artifact that may be replaced concurrently.

    The size is sampled twice around a short pause; a changing size, an empty
    file or a truncated decode is retried up to `attempts` times. Any other
    error propagates immediately.
    """
    last_err: Exception | None = None
    for _ in range(max(1, attempts)):
        try:
            if await _stable_size(path) is None:
                await asyncio.sleep(delay_ms / 1000.0)
                continue
            data = await run_in_threadpool(_read_bytes, path)
            await run_in_threadpool(decode_png, data)
            return data
        except (ArtifactReadError, OSError, SyntaxError, ValueError, EOFError, zlib.error) as exc:
            if isinstance(exc, FileNotFoundError) or not _is_transient(exc):
                raise
            last_err = exc
            await asyncio.sleep(delay_ms / 1000.0)

    raise last_err or ArtifactReadError(f"PNG read failed, size never settled: {path}")


async def read_png_with_retry(
    path: str,
    attempts: int = PNG_READ_RETRIES,
    delay_ms: int = PNG_READ_RETRY_DELAY_MS,
) -> np.ndarray:
    data = await read_png_bytes_with_retry(path, attempts, delay_ms)
    return await run_in_threadpool(decode_png, data)
