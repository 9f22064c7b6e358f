"""
Chunking Module
===============

Sentence/clause-aware splitting of model completions into message chunks.
"""

from .message_chunker import chunk_response_text

__all__ = ["chunk_response_text"]
