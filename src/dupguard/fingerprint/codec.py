"""Combination and hex/binary conversion of fingerprint bit-strings."""

COMBINED_PART_BITS = 128
COMBINED_BITS = 2 * COMBINED_PART_BITS


def fit_bits(bits: str, length: int) -> str:
    """
    Repeat a bit-string cyclically and truncate it to exactly `length` bits.

    Args:
        bits: Non-empty string of '0'/'1' characters
        length: Target length

    Returns:
        Bit-string of the requested length
    """
    if not bits:
        raise ValueError("Cannot fit an empty bit-string")
    repeats = -(-length // len(bits))
    return (bits * repeats)[:length]


def combine(average_hash: str, frequency_hash: str) -> str:
    """
    Merge an average hash and a frequency hash into one 256-bit string.

    The first 128 bits of each hash are concatenated. Hashes shorter than 128
    bits (the 63-bit frequency hash) are cycled to fill their half.
    """
    return (
        fit_bits(average_hash, COMBINED_PART_BITS)
        + fit_bits(frequency_hash, COMBINED_PART_BITS)
    )


def to_hex(bits: str) -> str:
    """Convert a bit-string to hex, 4 bits per digit, left to right."""
    return "".join(
        format(int(bits[i:i + 4], 2), "x")
        for i in range(0, len(bits), 4)
    )


def to_binary(hex_string: str) -> str:
    """Convert a hex string to a bit-string, 4 zero-padded bits per digit."""
    return "".join(format(int(digit, 16), "04b") for digit in hex_string)
