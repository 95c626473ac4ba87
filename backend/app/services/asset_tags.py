"""Deterministic, never-reused asset tag generation."""

from __future__ import annotations

import re

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .. import models

DEFAULT_PREFIX = "AST"
PREFIX_LENGTH = 4
SEQUENCE_WIDTH = 5

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def tag_prefix(product_name: str | None) -> str:
    """Derive the tag prefix from a product name: ``"Dell Latitude"`` -> ``"DELL"``."""

    cleaned = _NON_ALNUM.sub("", (product_name or "").upper())
    return cleaned[:PREFIX_LENGTH] or DEFAULT_PREFIX


def format_tag(prefix: str, value: int) -> str:
    return f"{prefix}-{value:0{SEQUENCE_WIDTH}d}"


def next_asset_tag(db: Session, product: models.Product) -> str:
    """Reserve the next tag for ``product`` inside the caller's transaction.

    The counter is bumped with a single ``UPDATE ... SET last_value = last_value + 1``
    before it is read back, so two transactions can never observe the same value.
    Sequences are keyed by prefix rather than product, which keeps tags unique
    when several products share a prefix. Counters only move forward, so tags of
    soft-deleted or purged assets are never handed out again. Callers hold
    ``TAG_PREFIX_LOCKS`` for the prefix until they commit.
    """

    prefix = tag_prefix(product.name)
    result = db.execute(
        update(models.AssetTagSequence)
        .where(models.AssetTagSequence.prefix == prefix)
        .values(last_value=models.AssetTagSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.add(models.AssetTagSequence(prefix=prefix, last_value=1))
        db.flush()
        value = 1
    else:
        value = db.execute(
            select(models.AssetTagSequence.last_value).where(
                models.AssetTagSequence.prefix == prefix
            )
        ).scalar_one()
    return format_tag(prefix, value)
