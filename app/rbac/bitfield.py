"""
Bitfield arithmetic for permission checks.

Every permission owns exactly one bit (a power of two).  A principal's
effective bitfield is the OR of the bits granted through its roles.
Python ints are arbitrary precision, so bit 200 is as cheap to test as
bit 0 — nothing here is limited to 64 bits.

Bitfields cross process boundaries (DB column, cache, JWT claim) as
decimal strings; `parse_bits` / `bits_to_str` are the only conversions.
"""

from collections.abc import Iterable


def is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def next_bitfield(last: int) -> int:
    """Bit following `last`; the first bit when nothing is assigned yet."""
    if last < 0:
        raise ValueError("bitfield cannot be negative")
    return last * 2 if last else 1


def bit_position(bitfield: int) -> int:
    """Zero-based index of a single-bit value (1 -> 0, 8 -> 3)."""
    if not is_power_of_two(bitfield):
        raise ValueError(f"{bitfield} is not a single bit")
    return bitfield.bit_length() - 1


def combine_bitfields(bitfields: Iterable[int]) -> int:
    combined = 0
    for bitfield in bitfields:
        combined |= bitfield
    return combined


def has_bit(bits: int, bitfield: int) -> bool:
    """True when every bit of `bitfield` is set in `bits`."""
    if bitfield <= 0:
        return False
    return bits & bitfield == bitfield


def has_all_bits(bits: int, bitfields: Iterable[int]) -> bool:
    return all(has_bit(bits, bitfield) for bitfield in bitfields)


def parse_bits(value: str | int | None) -> int:
    """Parse a decimal-string bitfield.  None / "" mean no bits."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("bitfield must be a decimal string or int")
    if isinstance(value, int):
        bits = value
    else:
        text = value.strip()
        if not text.isdigit():
            raise ValueError(f"invalid bitfield {value!r}")
        bits = int(text)
    if bits < 0:
        raise ValueError("bitfield cannot be negative")
    return bits


def bits_to_str(bits: int) -> str:
    return str(bits)
