from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlparse

import requests
import zstandard

from autoshengji.wire import ProtocolError

DICTIONARY_MAX_SIZE = 112_640


class DictionaryError(ProtocolError):
    pass


def _is_url(source: str) -> bool:
    return urlparse(source).scheme in {"http", "https"}


def fetch_dictionary_blob(source: str, timeout: float = 10.0) -> bytes:
    if _is_url(source):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise DictionaryError(f"failed to fetch dictionary from {source}: {exc}") from exc
        return response.content

    path = Path(source)
    if not path.is_file():
        raise DictionaryError(f"dictionary file not found: {path}")
    return path.read_bytes()


def decompress_dictionary(blob: bytes, max_size: int = DICTIONARY_MAX_SIZE) -> zstandard.ZstdCompressionDict:
    """Expand the shipped dictionary blob.

    The shared dictionary is distributed zstd-compressed, so it has to be
    inflated (without a dictionary) before frames can be decoded with it.
    """
    if not blob:
        raise DictionaryError("dictionary blob is empty")
    try:
        raw = zstandard.ZstdDecompressor().decompress(blob, max_output_size=max_size)
    except zstandard.ZstdError as exc:
        raise DictionaryError(f"dictionary blob is not a zstd frame: {exc}") from exc
    if not raw:
        raise DictionaryError("dictionary decompressed to zero bytes")
    return zstandard.ZstdCompressionDict(raw)


def load_dictionary(
    source: str,
    max_size: int = DICTIONARY_MAX_SIZE,
    logger: logging.Logger | None = None,
) -> zstandard.ZstdCompressionDict:
    blob = fetch_dictionary_blob(source)
    dict_data = decompress_dictionary(blob, max_size=max_size)
    if logger is not None:
        logger.info("Loaded dictionary %s (%d -> %d bytes)", source, len(blob), len(dict_data.as_bytes()))
    return dict_data
