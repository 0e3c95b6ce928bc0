from __future__ import annotations

import uuid

_ALPHABET = "abcdefghijklmnopqrstuvwxyz"
_PER_LETTER = 100


def generate_sorting_key(index: int) -> str:
    """Return a sorting key for a block at ``index``: a00..a99, b00..b99, ...

    The number is zero padded to two digits so keys compare correctly as
    plain strings. Ordering holds for indices below 2600 only: past the
    last letter every key is clamped to 'z', so index 2600 yields "z00",
    which sorts before "z99" (index 2599).
    """
    if index < 0:
        raise ValueError(f"Sorting key index must be non-negative, got {index}")
    letter_index = index // _PER_LETTER
    letter = _ALPHABET[letter_index] if letter_index < len(_ALPHABET) else _ALPHABET[-1]
    return f"{letter}{index % _PER_LETTER:02d}"


def generate_block_id() -> str:
    """32 lowercase hex characters."""
    return uuid.uuid4().hex
