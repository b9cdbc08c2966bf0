"""Transport-artifact stripping for raw change-stream payloads.

Producers on the content topic occasionally emit payloads with a UTF-8
byte-order mark, a single stray character in front of the opening brace
(historically a ``z``), or control bytes picked up in transit.  ``sanitize``
removes those so the decoder sees plain JSON.

Lossy: every character outside printable ASCII (0x20-0x7E) is
dropped, including legitimate non-Latin text inside titles and bodies.
Parseability wins over fidelity here; see DESIGN.md before relying on it.
"""

from __future__ import annotations

import re

_BOM = "\ufeff"
_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]")
_STRUCTURE_START = ("{", "[")


def sanitize(raw: bytes | str | None) -> str:
    """Return *raw* with transport artifacts removed.  Never raises."""
    if raw is None:
        return ""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw

    if text.startswith(_BOM):
        text = text[1:]

    # One stray character glued to the opening brace, e.g. "z{...".
    if len(text) > 1 and text[0] not in _STRUCTURE_START and text[1] == "{":
        text = text[1:]

    text = _NON_PRINTABLE.sub("", text)

    if text.startswith(_STRUCTURE_START):
        return text

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        # Leave it to the decoder to report the payload as malformed.
        return text
    return text[min(starts) :]
