"""Fetching of the off-chain documents votes are anchored to."""

import requests

from hotcold.certificate import Anchor
from hotcold.exception import AnchorFetchException
from hotcold.hash import AnchorDataHash, blake2b_256
from hotcold.logging import logger

__all__ = ["fetch_anchor"]


def fetch_anchor(url: str, timeout: float = 30) -> Anchor:
    """Download the document at ``url`` and anchor it by its blake2b-256 hash.

    Args:
        url (str): Location of the document.
        timeout (float): Seconds to wait for the server.

    Returns:
        Anchor: The url and the hash of the body it served.

    Raises:
        :class:`AnchorFetchException`: When the request fails or the server does not
            answer with a success status.
    """
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise AnchorFetchException(f"Failed to fetch anchor {url}: {e}") from e

    # only 2xx bodies are the document itself
    if not 200 <= response.status_code < 300:
        raise AnchorFetchException(
            f"Failed to fetch anchor {url}: status {response.status_code}"
        )

    data_hash = AnchorDataHash(blake2b_256(response.content))
    logger.debug(f"Anchor {url} hashes to {data_hash}")
    return Anchor(url, data_hash)
