"""Append-only audit trail of an issue.

Usage:
    trail = append_note(issue.audit_trail, actor.label, 'Approved', at=now, actor_id=actor.user_id)

Entries keep the raw ``(timestamp, actor_label, text)`` tuple; the human readable line is
derived from it (``AuditEntry.formatted``) so nobody has to parse prose back.
"""
from __future__ import annotations
import re
from datetime import datetime
from typing import Iterable, Optional, Tuple

from issuedesk.domain.models import AuditEntry
from issuedesk.utils.clock import ensure_utc, parse_iso

Trail = Tuple[AuditEntry, ...]

LEGACY_SEPARATOR = '\n\n'
LEGACY_LABEL = 'legacy'
_LEGACY_LINE = re.compile(
    r'^(?P<text>.*?)(?: \((?P<label>[^()]*)\))? at (?P<ts>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z?)\s*$',
    re.DOTALL,
)


def next_timestamp(trail: Iterable[AuditEntry], at: datetime) -> datetime:
    """``at`` clamped so it never precedes the newest entry already in the trail."""
    at = ensure_utc(at)
    entries = tuple(trail)
    if entries and entries[-1].timestamp > at:
        return entries[-1].timestamp
    return at


def append_note(trail: Iterable[AuditEntry], actor_label: str, text: str, *, at: datetime,
                actor_id: Optional[int] = None, action: Optional[str] = None) -> Trail:
    entries = tuple(trail)
    entry = AuditEntry(
        timestamp=next_timestamp(entries, at),
        actor_label=actor_label,
        text=text,
        actor_id=actor_id,
        action=action,
    )
    return entries + (entry,)


def compose_text(default_note: str, comment: Optional[str]) -> str:
    comment = (comment or '').strip()
    return comment or default_note


def parse_legacy_comment(raw: Optional[str], fallback: datetime) -> Trail:
    """Split the old ``\\n\\n``-joined comment blob into entries.

    Chunks without a recognisable ``... (user) at <iso>`` suffix keep their text and take the
    previous entry's timestamp (or ``fallback``).
    """
    if not raw or not raw.strip():
        return ()
    entries = []
    last = ensure_utc(fallback)
    for chunk in raw.split(LEGACY_SEPARATOR):
        chunk = chunk.strip()
        if not chunk:
            continue
        m = _LEGACY_LINE.match(chunk)
        if m:
            try:
                ts = parse_iso(m.group('ts'))
            except ValueError:
                ts = last
            text = m.group('text').strip() or chunk
            label = (m.group('label') or LEGACY_LABEL).strip() or LEGACY_LABEL
        else:
            ts, text, label = last, chunk, LEGACY_LABEL
        ts = max(ts, last) if entries else ts
        entries.append(AuditEntry(timestamp=ts, actor_label=label, text=text, action='legacy'))
        last = ts
    return tuple(entries)


def render_trail(trail: Iterable[AuditEntry]) -> str:
    return LEGACY_SEPARATOR.join(e.formatted for e in trail)


__all__ = ['Trail', 'append_note', 'next_timestamp', 'compose_text', 'parse_legacy_comment', 'render_trail']
