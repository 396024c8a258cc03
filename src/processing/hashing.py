"""Deterministic content fingerprints used as the deal dedup key."""

import hashlib


def content_hash(subject: str, body: str, compensation: object = None) -> str:
    """Return the SHA-256 hex digest of subject, body and compensation.

    Fields are concatenated in that order with no separator; a missing or
    zero compensation contributes nothing.
    """
    comp = str(compensation) if compensation else ""
    if comp.strip() == "0":
        comp = ""
    return hashlib.sha256(f"{subject}{body}{comp}".encode("utf-8")).hexdigest()
