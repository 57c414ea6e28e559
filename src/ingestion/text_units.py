"""
Sentence segmentation into TextUnits.

Segmentation is deliberately trivial: a sentence runs up to and including a
run of terminal punctuation (. ! ?). Offsets point into the original text, so
``text[unit.start_offset:unit.end_offset] == unit.text`` always holds.
"""

import re
from typing import List

from src.shared.models import TextUnit

# Non-space start, anything but terminal punctuation, then the punctuation run
# (or end of text for a trailing fragment)
_SENTENCE_RE = re.compile(r"\S[^.!?]*(?:[.!?]+|\Z)")

_PARAGRAPH_RE = re.compile(r"\S(?:.|\n(?!\s*\n))*")


def split_sentences(document_id: str, text: str) -> List[TextUnit]:
    """
    Segment ``text`` into sentence TextUnits with source offsets.

    Leading and trailing whitespace of each sentence is excluded from the
    unit; empty input yields no units.
    """
    units: List[TextUnit] = []
    for match in _SENTENCE_RE.finditer(text):
        sentence = match.group().rstrip()
        if not sentence:
            continue
        start = match.start()
        units.append(
            TextUnit(
                document_id=document_id,
                index=len(units),
                start_offset=start,
                end_offset=start + len(sentence),
                text=sentence,
            )
        )
    return units


def split_paragraphs(document_id: str, text: str) -> List[TextUnit]:
    """Segment ``text`` on blank lines into paragraph TextUnits."""
    units: List[TextUnit] = []
    for match in _PARAGRAPH_RE.finditer(text):
        paragraph = match.group().rstrip()
        if not paragraph:
            continue
        start = match.start()
        units.append(
            TextUnit(
                document_id=document_id,
                index=len(units),
                start_offset=start,
                end_offset=start + len(paragraph),
                text=paragraph,
            )
        )
    return units
