"""
Shared ORDER BY clause helpers for song queries.

Important:
- The returned strings are *static SQL fragments* selected from a small
  whitelist. Do NOT concatenate user input into ORDER BY.
- Title ordering uses SQLite's default BINARY collation, so it is
  case-sensitive ("Zebra" sorts before "apple").
"""

from __future__ import annotations

from typing import Literal

SongsOrderBy = Literal[
    "title",
    "artist",
    "album",
    "date_added",
    "id",
]


def songs_order_clause(order_by: str) -> str:
    """
    Return an ORDER BY clause for song list queries (table alias `s`).

    Unknown values fall back to title ordering.
    """
    if order_by == "artist":
        return "ORDER BY s.artist ASC, s.album ASC, s.title ASC, s.id ASC"
    if order_by == "album":
        return "ORDER BY s.album ASC, s.title ASC, s.id ASC"
    if order_by == "date_added":
        return "ORDER BY s.date_added ASC, s.id ASC"
    if order_by == "id":
        return "ORDER BY s.id ASC"

    # Default: title
    return "ORDER BY s.title ASC, s.id ASC"
