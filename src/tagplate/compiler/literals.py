"""Literal vault - keeps verbatim text away from the tag rules."""

from __future__ import annotations

import hashlib
import re
from typing import Dict

from tagplate.runtime.spec import CLOSE, OPEN

LITERAL_BLOCK = re.compile(r"\{literal\}([\s\S]*?)\{/literal\}", re.IGNORECASE)

# Region markers written in template text; the collapse rule and the loader
# must only ever see markers emitted by the rules.
MARKER = re.compile(r"<\?py|\?>", re.IGNORECASE)

_MARKER_RUN = re.compile(r"(<\?py|\?>)((?:\r?\n)*)", re.IGNORECASE)


def escape_markers(text: str) -> str:
    """Rewrite region markers in plain text as code regions that print them.

    The printed string is split so the generated region never contains a
    marker itself. Newlines right after a marker are printed by the same
    region, since the loader swallows one newline after every ``?>``.

    >>> escape_markers("a?>b")
    "a<?py echo '?' '>'; ?>b"
    """

    def echo(match: re.Match[str]) -> str:
        marker = match.group(1)
        parts = [marker[:-1], marker[-1]]
        if match.group(2):
            parts.append(match.group(2))
        return f"{OPEN} echo {' '.join(repr(part) for part in parts)}; {CLOSE}"

    return _MARKER_RUN.sub(echo, text)


class LiteralVault:
    """Swaps verbatim text for placeholders and back.

    One vault lives for exactly one top-level compilation. Includes expanded
    during that compilation extract into the same vault, so every placeholder
    survives until the whole rule table has run.
    """

    def __init__(self) -> None:
        self._literals: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._literals)

    def _stash(self, content: str) -> str:
        token = "#" + hashlib.md5(content.encode()).hexdigest() + "#"
        self._literals[token] = content
        return token

    def extract(self, text: str) -> str:
        """Replace literal blocks and bare region markers with placeholders.

        Args:
            text: Raw template text.

        Returns:
            The text with ``{literal}...{/literal}`` spans and any ``<?py`` /
            ``?>`` swapped for ``#<md5>#`` tokens.
        """
        text = LITERAL_BLOCK.sub(lambda m: self._stash(m.group(1)), text)
        return MARKER.sub(lambda m: self._stash(m.group(0)), text)

    def restore(self, text: str) -> str:
        """Put the stashed content back in place of every placeholder.

        Markers in restored content come back as code that prints them, so
        compiled code only contains markers the rules generated.
        """
        if not self._literals:
            return text
        tokens = "|".join(re.escape(token) for token in self._literals)
        placeholder = re.compile(f"({tokens})((?:\\r?\\n)*)")
        return placeholder.sub(
            lambda m: escape_markers(self._literals[m.group(1)] + m.group(2)), text
        )
