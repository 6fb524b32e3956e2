
from __future__ import annotations

import logging
from typing import Callable, Optional

from .errors import UntrustedEndpointError

log = logging.getLogger("urifs.trust")

Validator = Callable[[str], bool]
"""Receives an upper-case hex fingerprint; returns True to trust the endpoint."""


def accept_any(fingerprint: str) -> bool:
    """Permissive default: trust every certificate or host key."""
    return True


def normalize_fingerprint(fingerprint: str) -> str:
    return fingerprint.replace(":", "").replace(" ", "").upper()


def hex_fingerprint(digest: bytes) -> str:
    return digest.hex().upper()


def pinned(*fingerprints: str) -> Validator:
    """Validator that only trusts the given fingerprints.

    Fingerprints may be written ``"AB:CD:..."`` or ``"abcd..."``.
    """
    allowed = frozenset(normalize_fingerprint(f) for f in fingerprints)

    def _validate(fingerprint: str) -> bool:
        return normalize_fingerprint(fingerprint) in allowed

    return _validate


def verify_endpoint(validator: Optional[Validator], fingerprint: str, endpoint: str) -> None:
    """Offer ``fingerprint`` to ``validator``; raise if it is rejected."""
    if validator is None:
        validator = accept_any
    if not validator(fingerprint):
        log.warning("rejected fingerprint %s for %s", fingerprint, endpoint)
        raise UntrustedEndpointError(endpoint, fingerprint)
    log.debug("accepted fingerprint %s for %s", fingerprint, endpoint)
