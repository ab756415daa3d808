"""
Rewrite functions — post-render transforms applied before diffing.

A rewrite takes rendered manifest text and returns text. It is applied
to both the deployed and the proposed side of a diff so expected noise
(the chart version bump itself) does not drown real changes.
"""

from __future__ import annotations

from typing import Callable

Rewrite = Callable[[str], str]


def identity(text: str) -> str:
    return text


def string_replacer(old: str, new: str) -> Rewrite:
    """Replace every occurrence of ``old`` with ``new``.

    An empty ``old`` (or old == new) yields the identity rewrite.
    """
    if not old or old == new:
        return identity

    def _replace(text: str) -> str:
        return text.replace(old, new)

    _replace.__name__ = f"replace_{old}_with_{new}"
    return _replace


def compose(*rewrites: Rewrite | None) -> Rewrite:
    """Chain rewrites left to right, skipping None."""
    chain = [r for r in rewrites if r is not None]
    if not chain:
        return identity

    def _composed(text: str) -> str:
        for rewrite in chain:
            text = rewrite(text)
        return text

    return _composed
