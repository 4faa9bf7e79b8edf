"""Overflow-safe scaled integer arithmetic for 64-bit counters."""

MAX_U64 = (1 << 64) - 1


def _check_u64(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0 or value > MAX_U64:
        raise ValueError(f"{name} out of unsigned 64-bit range: {value}")


def _checked_mul(a: int, b: int) -> int | None:
    """Return a * b, or None when the product does not fit in 64 bits."""
    if b != 0 and a > MAX_U64 // b:
        return None
    return a * b


def scaled_divide(a: int, b: int, divisor: int) -> int:
    """
    Compute floor(a * b / divisor) for unsigned 64-bit operands.

    The product is only formed directly when it is known to fit in 64 bits.
    Otherwise ``a`` is split into ``q * divisor + r`` and the result is
    assembled as ``q * b + (r * b) // divisor``, with ``q * b`` and the final
    sum checked against the 64-bit range.

    Args:
        a: First factor.
        b: Second factor.
        divisor: Divisor; zero yields 0.

    Returns:
        The exact quotient, or 0 when ``divisor`` is zero or the quotient
        does not fit in 64 bits.

    Raises:
        TypeError: If an operand is not an int.
        ValueError: If an operand is outside [0, 2**64 - 1].
    """
    _check_u64("a", a)
    _check_u64("b", b)
    _check_u64("divisor", divisor)

    if divisor == 0:
        return 0

    product = _checked_mul(a, b)
    if product is not None:
        return product // divisor

    q, r = divmod(a, divisor)

    whole = _checked_mul(q, b)
    if whole is None:
        return 0

    # r < divisor, so this term is always < b and fits in 64 bits.
    fraction = (r * b) // divisor

    if whole > MAX_U64 - fraction:
        return 0
    return whole + fraction


def kib_to_bytes(kib: int) -> int:
    """Convert a kibibyte count (as reported by /proc/meminfo) to bytes."""
    return scaled_divide(kib, 1024, 1)
