"""Line codec shared by the command builder and the block reconstructor.

Statements are flat, whitespace-delimited lines such as::

    set protocols bgp group G neighbor 192.0.2.1 description "uplink peer"

Values with whitespace or special characters are wrapped in double quotes.
Secret values use the device's reversible ``$9$`` encoding.
"""
import random
import re
from typing import Optional

from ..exceptions import ParseError

XML_START_TAG_CONFIG_OUT = "<configuration-output>"
XML_END_TAG_CONFIG_OUT = "</configuration-output>"

SECRET_MAGIC = "$9$"

_NEEDS_QUOTES = re.compile(r"[\s\"';{}#\[\]]")

# $9$ alphabet, split in families: the family of the salt character gives
# the number of random characters tossed after it.
_FAMILY = ["QzF3n6/9CAtpu0O", "B1IREhcSyrleKvMW8LXx", "7N-dVbwsY2g4oaJZGUDj", "iHkq.mPf5T"]
_EXTRA = {c: 3 - idx for idx, fam in enumerate(_FAMILY) for c in fam}
_NUM_ALPHA = "".join(_FAMILY)
_ALPHA_NUM = {c: idx for idx, c in enumerate(_NUM_ALPHA)}
_ENCODING = (
    (1, 4, 32),
    (1, 16, 32),
    (1, 8, 32),
    (1, 64),
    (1, 32),
    (1, 4, 16, 128),
    (1, 32, 64),
)


def quote(value: str) -> str:
    """Quote a value if the device would need it quoted."""
    if value and not _NEEDS_QUOTES.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def unquote(value: str) -> str:
    """Inverse of :func:`quote`. Unquoted tokens are returned as-is."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        inner = value[1:-1]
        out = []
        escape = False
        for ch in inner:
            if escape:
                out.append(ch)
                escape = False
            elif ch == "\\":
                escape = True
            else:
                out.append(ch)
        return "".join(out)
    return value


def split_token(text: str) -> tuple[str, str]:
    """Split the first token off ``text``, honouring double quotes.

    Returns:
        Tuple of (token, rest) where rest has no leading space
    """
    text = text.lstrip(" ")
    if not text:
        return "", ""
    if text.startswith('"'):
        escape = False
        for idx in range(1, len(text)):
            ch = text[idx]
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                return text[: idx + 1], text[idx + 1:].lstrip(" ")
        # unterminated quote: the whole remainder is the token
        return text, ""
    token, _, rest = text.partition(" ")
    return token, rest.lstrip(" ")


def cut_prefix(text: str, prefix: str) -> tuple[bool, str]:
    """Test ``text`` for ``prefix`` and cut it.

    Returns:
        Tuple of (matched, rest). rest is ``text`` unchanged when not matched.
    """
    if text.startswith(prefix):
        return True, text[len(prefix):]
    return False, text


def config_lines(output: str) -> list[str]:
    """Split a configuration dump into statement lines.

    Blank lines and the configuration-output framing markers are dropped.
    """
    lines = []
    for item in output.splitlines():
        if XML_START_TAG_CONFIG_OUT in item:
            continue
        if XML_END_TAG_CONFIG_OUT in item:
            break
        item = item.strip()
        if item:
            lines.append(item)
    return lines


def is_secret_encoded(value: str) -> bool:
    return value.startswith(SECRET_MAGIC)


def _gap(c1: str, c2: str) -> int:
    return (_ALPHA_NUM[c2] - _ALPHA_NUM[c1]) % len(_NUM_ALPHA) - 1


def _gap_encode(char: str, prev: str, encode: tuple[int, ...]) -> str:
    value = ord(char)
    if value > 255:
        raise ValueError(f"cannot encode non latin-1 character {char!r} in secret")
    gaps = []
    for x in reversed(encode):
        gaps.insert(0, value // x)
        value %= x
    crypt = ""
    for gap in gaps:
        gap += _ALPHA_NUM[prev] + 1
        prev = _NUM_ALPHA[gap % len(_NUM_ALPHA)]
        crypt += prev
    return crypt


def encode_secret(plain: str, salt: Optional[str] = None, rand: Optional[str] = None) -> str:
    """Encode a plain secret to the ``$9$`` format.

    Args:
        plain: Secret in clear text
        salt: Salt character (random if omitted)
        rand: Padding characters following the salt (random if omitted);
            its length must match the family of ``salt``
    """
    if salt is None:
        salt = random.choice(_NUM_ALPHA)
    if salt not in _EXTRA:
        raise ValueError(f"invalid salt character {salt!r}")
    if rand is None:
        rand = "".join(random.choice(_NUM_ALPHA) for _ in range(_EXTRA[salt]))
    if len(rand) != _EXTRA[salt] or any(c not in _ALPHA_NUM for c in rand):
        raise ValueError(f"invalid padding {rand!r} for salt {salt!r}")

    crypt = SECRET_MAGIC + salt + rand
    prev = salt
    for pos, char in enumerate(plain):
        crypt += _gap_encode(char, prev, _ENCODING[pos % len(_ENCODING)])
        prev = crypt[-1]
    return crypt


def decode_secret(crypt: str) -> str:
    """Decode a ``$9$`` secret.

    Raises:
        ParseError: If the value is not a well-formed ``$9$`` secret
    """
    if not crypt.startswith(SECRET_MAGIC):
        raise ParseError("secret is not $9$ encoded", line=crypt)
    chars = crypt[len(SECRET_MAGIC):]
    if not chars or chars[0] not in _EXTRA:
        raise ParseError("invalid $9$ salt", line=crypt)
    first = chars[0]
    chars = chars[1 + _EXTRA[first]:]
    if any(c not in _ALPHA_NUM for c in chars):
        raise ParseError("invalid character in $9$ secret", line=crypt)

    prev = first
    decoded = ""
    while chars:
        decode = _ENCODING[len(decoded) % len(_ENCODING)]
        nibble, chars = chars[: len(decode)], chars[len(decode):]
        if len(nibble) != len(decode):
            raise ParseError("truncated $9$ secret", line=crypt)
        value = 0
        for idx, char in enumerate(nibble):
            value += _gap(prev, char) * decode[idx]
            prev = char
        decoded += chr(value % 256)
    return decoded
