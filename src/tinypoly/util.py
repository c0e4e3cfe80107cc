import re
import urllib.parse

# pylint: disable=missing-function-docstring

_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def path_to_pattern(val: str) -> re.Pattern[str]:
    """Encode non-regex patterns as regex."""
    if val[0] == '^':
        return re.compile(val)  # indicates raw regex

    def esc(s):
        return re.escape(re.sub(r"//+", "/", "/" + s))

    def parts(val):
        i = 0  # pattern below is "*" or "<identifier>" or "<identifier:regex>"
        # complicated because escaping > is allowed ("<ident:foo\>bar>")
        yield "^"
        for m in re.finditer(r'(<([a-zA-Z0-9\.]+)(?::((?:\\.|[^>])*))?>)|(\*)', val):
            if m.start() > i:
                yield esc(val[i:m.start()])
            if m.group() == "*":
                yield r"[^/]+"
            else:
                yield "(?P<%s>%s)" % (m.groups()[1], m.groups()[2] or r'[^/]+')
            i = m.end()
        if i < len(val):
            yield esc(val[i:])
        yield "$"
    return re.compile("".join(parts(val)))


def parse_form(body: bytes | str) -> dict[str, list[str]]:
    """Parse an application/x-www-form-urlencoded body.

    Malformed percent escapes raise ValueError, which urllib lets through.
    Bytes that are not UTF-8 become U+FFFD.
    """
    text = body.decode('utf-8', 'replace') if isinstance(body, bytes) else body
    if m := _BAD_ESCAPE_RE.search(text):
        raise ValueError(f"invalid URL escape {text[m.start():m.start() + 3]!r}")
    return urllib.parse.parse_qs(text, keep_blank_values=True,
                                 encoding='utf-8', errors='replace')
