"""Pull the code payload out of a provider's free-text answer."""

import re

# First fenced block, with an optional language tag such as ```openscad
FENCED_BLOCK = re.compile(r"```[\w+-]*[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL)


def extract_code(text: str) -> str:
    """Interior of the first fenced block, or the whole text when there is none.

    The interior is returned verbatim; no other cleanup happens.

    >>> extract_code("```openscad\\ncube(10);\\n```")
    'cube(10);'
    """
    match = FENCED_BLOCK.search(text)
    if match:
        return match.group(1)
    return text
