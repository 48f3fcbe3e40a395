# -*- coding: utf-8 -*-
"""Deterministic content-hash identifiers."""

import hashlib


def generate_deterministic_id(prefix: str, *parts) -> str:
    """
    Build a stable id from its inputs.

    The parts are stringified and joined with ``|``; the id is the prefix
    plus the first 16 hex characters of the SHA-256 digest. Identical inputs
    always give the identical id.

    Examples
    --------
    >>> generate_deterministic_id('bt', 'sma_crossover', 'BTCUSDT', '5m', 0, 1, 10000)[:3]
    'bt_'
    """
    payload = '|'.join(str(part) for part in parts)
    digest = hashlib.sha256(payload.encode('utf-8')).hexdigest()
    return f"{prefix}_{digest[:16]}"
