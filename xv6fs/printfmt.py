"""The user-level printf: %d, %x, %p, %s, %c and %%."""
from __future__ import annotations

_DIGITS = "0123456789ABCDEF"


def format_int(value: int, base: int, signed: bool) -> str:
    """Render ``value`` as a 32-bit integer in ``base``, signed or not."""
    if not 2 <= base <= len(_DIGITS):
        raise ValueError(f"unsupported base {base}")
    x = int(value) & 0xFFFFFFFF
    negative = signed and x >= 1 << 31
    if negative:
        x = (1 << 32) - x
    digits = []
    while True:
        x, rem = divmod(x, base)
        digits.append(_DIGITS[rem])
        if x == 0:
            break
    if negative:
        digits.append("-")
    return "".join(reversed(digits))


def _take(args) -> object:
    try:
        return next(args)
    except StopIteration:
        raise ValueError("not enough arguments for format") from None


def _char(value) -> str:
    if isinstance(value, str):
        return value
    return chr(int(value) & 0xFF)


def format_printf(fmt: str, *args) -> str:
    """Format ``args`` according to ``fmt``; unknown sequences are printed as-is."""
    values = iter(args)
    out: list[str] = []
    in_spec = False
    for ch in fmt:
        if not in_spec:
            if ch == "%":
                in_spec = True
            else:
                out.append(ch)
            continue
        in_spec = False
        if ch == "d":
            out.append(format_int(int(_take(values)), 10, True))
        elif ch in ("x", "p"):
            out.append(format_int(int(_take(values)), 16, False))
        elif ch == "s":
            s = _take(values)
            out.append("(null)" if s is None else str(s))
        elif ch == "c":
            out.append(_char(_take(values)))
        elif ch == "%":
            out.append("%")
        else:
            out.append("%" + ch)
    return "".join(out)