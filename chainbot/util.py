"""Miscellaneous utilities."""
import itertools
import re

__all__ = ["listify", "pad", "leading_int"]


def listify(x):
    """
    Returns [] if x is None, a single-item list consisting of x if x is a str or bytes, otherwise returns x.

    listify(None) -> []
    listify("string") -> ["string"]
    listify(b"bytes") -> [b"bytes"]
    listify(["foo", "bar"]) -> ["foo", "bar"]

    :param x: What to listify.
    :return:
    """
    if x is None:
        return []
    if isinstance(x, (str, bytes)):
        return [x]
    return x


def pad(iterable, size, padding=None):
    """
    Yields items from iterable, and then yields `padding` enough times to have yielded a total of `size` items.

    Designed for cases where you might want to write ``foo, bar, baz = "foo,bar".split(",")`` and don't to special case
    the tuple unpacking.

    Note that if iterable has more than size elements, they will still all be returned.

    :param iterable: Iterable to yield from.
    :param size: Number of elements to yield.
    :param padding: What to yield after the iterator is exhausted.
    """
    for item in iterable:
        yield item
        size -= 1
    if size > 0:
        yield from itertools.repeat(padding, size)


_leading_int_re = re.compile(r'\s*([+-]?)0*(\d+)')


def leading_int(text, default=0, limit=None):
    """
    Parses the integer at the start of `text`, ignoring anything that follows it.

    leading_int("3") -> 3
    leading_int("12abc") -> 12
    leading_int("abc") -> 0
    leading_int(None, default=5) -> 5
    leading_int("-900", limit=50) -> -50

    :param text: Text to parse.  May be None.
    :param default: Returned when there is no leading integer, or (without a `limit`) when it is too long to convert.
    :param limit: If set, the result is clamped to the range -limit..limit.  Overlong digit runs clamp rather than
        being converted.
    """
    if not text:
        return default
    match = _leading_int_re.match(text)
    if not match:
        return default
    sign, digits = match.groups()
    sign = -1 if sign == '-' else 1
    if limit is not None:
        if len(digits) > len(str(limit)):
            return sign * limit
        return sign * min(int(digits), limit)
    try:
        return sign * int(digits)
    except ValueError:
        # Beyond the interpreter's integer string conversion limit.
        return default
