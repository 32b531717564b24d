"""Field and array extraction from serialised PNMP JSON objects.

This is not a general JSON parser. Two lookup strategies are provided:

* ``find_value`` / ``find_array`` do a case-insensitive textual search for
  ``"name"`` anywhere in the object. A string *value* spelled like a field
  name (``"type":"NODES"`` vs the ``"nodes"`` array) can shadow the field.
* ``scan_fields`` tokenizes the object once and maps each top-level field
  name to its value, so only real names at depth 1 are matched.

``Record`` wraps a span and picks one strategy for every lookup.
"""

import re
from typing import Generator

FIELD_SCOPES = ("top-level", "textual")

STRING = "string"
SCALAR = "scalar"
ARRAY = "array"
OBJECT = "object"

_WHITESPACE = " \t\r\n"


def _is_token_char(ch: str) -> bool:
    return ch in "-." or (ch.isascii() and ch.isalnum())


def _locate(span: str, name: str, start: int = 0) -> int | None:
    """Return the index of the value that follows ``"name":``, or None."""
    match = re.compile(re.escape(f'"{name}"'), re.IGNORECASE).search(span, start)
    if match is None:
        return None
    colon = span.find(":", match.end())
    if colon < 0:
        return None
    pos = colon + 1
    while pos < len(span) and span[pos] in _WHITESPACE:
        pos += 1
    return pos


def _copy_value(span: str, pos: int, maxlen: int) -> str:
    if pos < len(span) and span[pos] == '"':
        end = span.find('"', pos + 1)
        value = span[pos + 1:] if end < 0 else span[pos + 1:end]
    else:
        end = pos
        while end < len(span) and _is_token_char(span[end]):
            end += 1
        value = span[pos:end]
    return value[:maxlen]


def find_value(span: str, name: str, maxlen: int = 79, start: int = 0) -> str | None:
    """Textual, case-insensitive lookup of a scalar field value.

    Quoted values are copied up to the next quote with no escape handling;
    bare values are copied while alphanumeric, ``-`` or ``.``. The result is
    silently truncated to ``maxlen`` characters. Returns None if the name is
    absent or not followed by a colon.
    """
    pos = _locate(span, name, start)
    if pos is None:
        return None
    return _copy_value(span, pos, maxlen)


def find_array(span: str, name: str, start: int = 0) -> int | None:
    """Return the index of the ``[`` opening the named array, or None."""
    pos = _locate(span, name, start)
    if pos is None or pos >= len(span) or span[pos] != "[":
        return None
    return pos


def next_array_element(span: str, pos: int, maxlen: int = 1023) -> tuple[int, str] | None:
    """Find the array element after the one starting at ``pos``.

    ``pos`` is either the array's opening ``[`` (yielding the first element)
    or the start of the previous element. The element is copied, braces
    included, up to ``maxlen`` characters. Returns ``(start, element)``, or
    None once the closing ``]`` is reached.

    Only flat arrays of flat objects are supported: an element must not
    contain braces or brackets inside its values.
    """
    n = len(span)
    i = pos
    if i >= n:
        return None
    if span[i] != "[":
        while i < n and span[i] not in "}]":
            i += 1
        if i >= n or span[i] != "}":
            return None
    while i < n and span[i] not in "{]":
        i += 1
    if i >= n or span[i] != "{":
        return None
    end = span.find("}", i)
    element = span[i:] if end < 0 else span[i:end + 1]
    return i, element[:maxlen]


def iter_array(span: str, pos: int, maxlen: int = 1023) -> Generator[str, None, None]:
    """Yield each element of the flat array whose ``[`` is at ``pos``."""
    found = next_array_element(span, pos, maxlen)
    while found is not None:
        start, element = found
        yield element
        found = next_array_element(span, start, maxlen)


def _skip_ws(span: str, i: int) -> int:
    while i < len(span) and span[i] in _WHITESPACE:
        i += 1
    return i


def _string_end(span: str, i: int) -> int:
    """Index of the quote closing the string opened at ``i``, or -1."""
    escaped = False
    for j in range(i + 1, len(span)):
        ch = span[j]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            return j
    return -1


def _container_end(span: str, i: int) -> int:
    """Index of the bracket closing the array/object opened at ``i``, or -1."""
    depth = 0
    in_string = False
    escaped = False
    for j in range(i, len(span)):
        ch = span[j]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return j
    return -1


def _read_value(span: str, i: int) -> tuple[str, str, int]:
    """Read the value starting at ``i``; return (kind, value, next index)."""
    ch = span[i]
    if ch == '"':
        end = _string_end(span, i)
        if end < 0:
            return STRING, span[i + 1:], len(span)
        return STRING, span[i + 1:end], end + 1
    if ch in "[{":
        end = _container_end(span, i)
        if end < 0:
            end = len(span) - 1
        return (ARRAY if ch == "[" else OBJECT), span[i:end + 1], end + 1
    end = i
    while end < len(span) and span[end] not in ",}]" + _WHITESPACE:
        end += 1
    token = span[i:end]
    valid = 0
    while valid < len(token) and _is_token_char(token[valid]):
        valid += 1
    return SCALAR, token[:valid], end


def scan_fields(span: str) -> dict[str, tuple[str, str]]:
    """Map the lower-cased top-level field names of an object to values.

    Values are ``(kind, text)``: string contents without quotes (escapes left
    as-is), bare scalar tokens, or the raw text of nested arrays and
    objects. The first occurrence of a duplicated name wins. Scanning stops
    quietly at the first malformed construct.
    """
    fields: dict[str, tuple[str, str]] = {}
    i = span.find("{")
    if i < 0:
        return fields
    i += 1
    while True:
        i = _skip_ws(span, i)
        if i >= len(span) or span[i] == "}":
            break
        if span[i] == ",":
            i += 1
            continue
        if span[i] != '"':
            break
        key_end = _string_end(span, i)
        if key_end < 0:
            break
        key = span[i + 1:key_end]
        i = _skip_ws(span, key_end + 1)
        if i >= len(span) or span[i] != ":":
            break
        i = _skip_ws(span, i + 1)
        if i >= len(span):
            break
        kind, value, i = _read_value(span, i)
        fields.setdefault(key.lower(), (kind, value))
    return fields


class Record:
    """A serialised JSON object plus the lookup strategy used on it."""

    def __init__(self, text: str, scope: str = "top-level"):
        if scope not in FIELD_SCOPES:
            raise ValueError(f"Unknown field scope: {scope!r}")
        self.text = text
        self.scope = scope
        self._fields = scan_fields(text) if scope == "top-level" else None

    def get(self, name: str, maxlen: int = 79) -> str | None:
        """Return the named scalar value truncated to ``maxlen``, or None."""
        if self._fields is None:
            return find_value(self.text, name, maxlen)
        entry = self._fields.get(name.lower())
        if entry is None:
            return None
        kind, value = entry
        if kind in (ARRAY, OBJECT):
            return ""
        return value[:maxlen]

    def array(self, name: str, after: str | None = None) -> str | None:
        """Return text starting at the named array's ``[``, or None.

        ``after`` only matters for textual lookups: the search then starts
        past that field's value, which is how a ``"nodes"`` array is told
        apart from an earlier ``"NODES"`` value.
        """
        if self._fields is None:
            start = 0
            if after is not None:
                start = _locate(self.text, after) or 0
                if start and self.text[start:start + 1] == '"':
                    closing = self.text.find('"', start + 1)
                    start = len(self.text) if closing < 0 else closing + 1
            pos = find_array(self.text, name, start)
            return None if pos is None else self.text[pos:]
        entry = self._fields.get(name.lower())
        if entry is None or entry[0] != ARRAY:
            return None
        return entry[1]

    def elements(self, name: str, maxlen: int = 1023,
                 after: str | None = None) -> Generator["Record", None, None]:
        """Yield each element of the named flat array as a Record."""
        array = self.array(name, after)
        if array is None:
            return
        for element in iter_array(array, 0, maxlen):
            yield Record(element, self.scope)
