"""
Bank transfer content codes.

Customers pay by bank transfer quoting a short code: a 2-5 letter
prefix followed by 3-10 digits taken from the order code, e.g. ``DH12345678``.
"""
import re
from dataclasses import dataclass
from typing import Optional

MIN_LENGTH, MAX_LENGTH = 5, 15
_SUFFIX = re.compile(r'^\d{3,10}$')
_PREFIX = re.compile(r'^[A-Za-z]{2,5}$')


@dataclass(frozen=True)
class TransferContent:
    prefix: str
    suffix: str

    @property
    def code(self) -> str:
        return f'{self.prefix}{self.suffix}'


def generate(order_code: str, prefix: str = 'DH') -> str:
    if not _PREFIX.match(prefix or ''):
        raise ValueError('Prefix must be 2-5 letters')
    digits = re.sub(r'\D', '', str(order_code))
    suffix = digits[-8:].rjust(3, '0')[:10]
    return f'{prefix.upper()}{suffix}'


def parse(content: Optional[str]) -> Optional[TransferContent]:
    """Split a transfer code into prefix and numeric suffix, or None when invalid."""
    value = (content or '').strip()
    if not MIN_LENGTH <= len(value) <= MAX_LENGTH:
        return None
    for size in range(2, 6):
        prefix, suffix = value[:size], value[size:]
        if _PREFIX.match(prefix) and _SUFFIX.match(suffix):
            return TransferContent(prefix=prefix.upper(), suffix=suffix)
    return None


def find_in_text(text: Optional[str]) -> Optional[TransferContent]:
    """Locate a transfer code inside free-form bank transfer text."""
    for token in re.findall(r'[A-Za-z]{2,5}\d{3,10}', text or ''):
        parsed = parse(token)
        if parsed is not None:
            return parsed
    return None
