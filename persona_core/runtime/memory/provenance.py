"""
Provenance - Traceability from memories back to conversation turns

WHAT: Builds, merges, and renders ProvenanceLink lists
WHERE: persona_core/runtime/memory/provenance.py - memory layer helper
WHO: Learner attaching origins; consolidation merging duplicates; debugging
TIME: O(n) in number of links
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence

from .models import MemoryNode, ProvenanceLink, to_iso_timestamp

EXCERPT_MAX_CHARS = 160

_WS_RE = re.compile(r"\s+")


@dataclass(slots=True)
class ProvenanceSource:
    """A conversation message a memory can be traced back to."""

    message_id: str
    thread_id: str
    role: str
    text: str
    timestamp: Any


def make_excerpt(text: str, max_chars: int = EXCERPT_MAX_CHARS) -> str:
    collapsed = _WS_RE.sub(" ", text or "").strip()
    if len(collapsed) <= max_chars:
        return collapsed
    return collapsed[: max_chars - 3].rstrip() + "..."


def create_provenance_links(memory_id: str, sources: Iterable[ProvenanceSource]) -> List[ProvenanceLink]:
    links = [
        ProvenanceLink(
            memory_id=memory_id,
            message_id=source.message_id,
            thread_id=source.thread_id,
            role=source.role,
            excerpt=make_excerpt(source.text),
            created_at_iso=to_iso_timestamp(source.timestamp),
        )
        for source in sources
    ]
    return dedupe_provenance(links)


def dedupe_provenance(links: Iterable[ProvenanceLink]) -> List[ProvenanceLink]:
    """Drop repeated links (same message, thread, and creation time), keeping first seen."""
    seen: set[str] = set()
    unique: List[ProvenanceLink] = []
    for link in links:
        key = link.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(link)
    return unique


def read_provenance_from_metadata(memory_id: str, metadata: Mapping[str, Any]) -> List[ProvenanceLink]:
    """Recover links from legacy metadata (``provenance`` list or ``source_message_ids``)."""
    raw = metadata.get("provenance")
    links: List[ProvenanceLink] = []
    if isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, Mapping):
                continue
            message_id = entry.get("message_id") or entry.get("messageId")
            created = entry.get("created_at_iso") or entry.get("createdAtIso")
            if not message_id or not created:
                continue
            links.append(
                ProvenanceLink(
                    memory_id=memory_id,
                    message_id=str(message_id),
                    thread_id=str(entry.get("thread_id") or entry.get("threadId") or ""),
                    role=str(entry.get("role") or "unknown"),
                    excerpt=make_excerpt(str(entry.get("excerpt") or "")),
                    created_at_iso=created,
                )
            )
    return dedupe_provenance(links)


def provenance_debug_lines(memories: Sequence[MemoryNode]) -> List[str]:
    lines: List[str] = []
    for memory in memories:
        if not memory.provenance:
            lines.append(f"{memory.id}: (no provenance) {make_excerpt(memory.content, 60)}")
            continue
        for link in memory.provenance:
            lines.append(
                f"{memory.id} <- {link.role}:{link.message_id}@{link.thread_id} "
                f"[{link.created_at_iso}] {link.excerpt}"
            )
    return lines


__all__ = [
    "ProvenanceSource",
    "create_provenance_links",
    "dedupe_provenance",
    "make_excerpt",
    "provenance_debug_lines",
    "read_provenance_from_metadata",
]
