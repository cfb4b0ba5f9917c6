import re
import string

BASE64_MARKER = ";base64,"
_BASE64_ALPHABET = frozenset(string.ascii_letters + string.digits + "+/=")
_BLANK_LINES = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")


def _strip_base64_payloads(text: str) -> str:
    pieces = []
    position = 0
    while True:
        start = text.find(BASE64_MARKER, position)
        if start == -1:
            pieces.append(text[position:])
            return "".join(pieces)
        pieces.append(text[position:start])
        end = start + len(BASE64_MARKER)
        while end < len(text) and text[end] in _BASE64_ALPHABET:
            end += 1
        position = end


def remove_base64(text: str) -> str:
    """Drop every ';base64,' marker together with the encoded payload after it.

    Anything before the marker (e.g. 'data:image/png') is left alone. Removing a
    payload can join the text around it into a new marker, so scan until none is left.
    """
    while BASE64_MARKER in text:
        text = _strip_base64_payloads(text)
    return text


def remove_artifacts(text: str) -> str:
    """Clean up an email body before it's sent to a model."""
    text = remove_base64(text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()
