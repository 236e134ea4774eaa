"""Parser for NVD ``.meta`` companion files.

A meta file is a handful of ``key:value`` lines separated by CRLF, e.g.::

    lastModifiedDate:2019-07-19T20:00:55-04:00
    size:4336300
    zipSize:243985
    gzSize:243845
    sha256:DA0B3030EF781806228ED40A7F295182AC835E96F4F5B27C258228531FBBED0C
"""

import re

# Any character but a line terminator; \Z so a trailing "\n" is not skipped.
_LINE_CHAR = r"[^\r\n\u2028\u2029]"
_KEY_RE = re.compile(rf":{_LINE_CHAR}*\Z")
_VALUE_RE = re.compile(rf"^{_LINE_CHAR}*?:")


def parse_meta_file(text: str) -> dict[str, str]:
    """Parse a meta file into a flat ``{field: value}`` dict.

    The key is everything before the first colon and the value everything
    after it, so colons inside the value (timestamps) survive.  A line
    with no colon at all comes back as ``{line: line}``.  Unknown keys are
    kept.

    Args:
        text: Raw meta file contents.

    Returns:
        Dict of field name to string value.
    """
    out: dict[str, str] = {}
    for line in text.split("\r\n"):
        if not line:
            continue
        key = _KEY_RE.sub("", line, count=1)
        value = _VALUE_RE.sub("", line, count=1)
        out[key] = value
    return out
