"""Post-processing of accepted markup before it is persisted."""

from __future__ import annotations

import re

_ATTRIBUTE_ASSET = re.compile(r'\b(src|href)="(?:\./)?(?:\.\./)*assets/')
_CSS_URL_ASSET = re.compile(r"url\((['\"]?)(?:\./)?(?:\.\./)*assets/")


def asset_prefix(depth: int) -> str:
    if depth < 0:
        raise ValueError(f"depth must be >= 0, got {depth!r}")
    return "../" * depth + "assets/"


def correct_asset_paths(html: str, depth: int) -> str:
    """Point every ``assets/`` reference at the project root from ``depth`` levels down."""

    prefix = asset_prefix(depth)
    fixed = _ATTRIBUTE_ASSET.sub(lambda match: f'{match.group(1)}="{prefix}', html)
    return _CSS_URL_ASSET.sub(lambda match: f"url({match.group(1)}{prefix}", fixed)
