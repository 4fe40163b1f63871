#!/usr/bin/env python3
# bytestack_values.py
#
# Modèle de valeurs de bytestack.
# - Bytes : un atome opaque, représenté par `bytes`
# - List  : une séquence ordonnée de valeurs, représentée par `tuple`
# - entiers non signés petit-boutistes, vérité d'un atome, printers
# - racine des erreurs (VMError) partagée par le lecteur et la VM
#
# Les deux variantes sont immuables : copier une valeur revient à partager
# la même référence, ce qui remplace le clonage des corps de définitions.

from __future__ import annotations

import sys
import unittest
from typing import Any, List, Tuple, Union

Value = Union[bytes, Tuple[Any, ...]]

# Séparateurs reconnus par le lecteur (et refusés dans un atome imprimé).
WHITESPACE = b" \t\n\r"
DELIMS = WHITESPACE + b"()"


# ---- Small helpers ----
def is_bytes(x) -> bool:
    return isinstance(x, bytes)

def is_list(x) -> bool:
    return isinstance(x, tuple)

def kind_of(x) -> str:
    if is_bytes(x):
        return "bytes"
    if is_list(x):
        return "list"
    return type(x).__name__


# ---- Errors ----
class VMError(RuntimeError):
    """Root of every failure a run can report.

    `context` grows as the error propagates out through words, innermost
    first, e.g. ["in .u-", "in .|>"].
    """

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.context: List[str] = []

    def add_context(self, where: str) -> "VMError":
        self.context.append(where)
        return self

    def format_chain(self) -> str:
        lines = [f"{type(self).__name__}: {self}"]
        lines.extend(f"  {c}" for c in self.context)
        return "\n".join(lines)

class TypeMismatchError(VMError):
    def __init__(self, expected: str, got: str, *, opname: str = "") -> None:
        where = f"{opname}: " if opname else ""
        super().__init__(f"{where}expected {expected}, got {got}")
        self.expected = expected
        self.got = got


def expect_bytes(x, opname: str) -> bytes:
    if not is_bytes(x):
        raise TypeMismatchError("bytes", kind_of(x), opname=opname)
    return x

def expect_list(x, opname: str) -> Tuple[Any, ...]:
    if not is_list(x):
        raise TypeMismatchError("list", kind_of(x), opname=opname)
    return x


def is_truthy(b: bytes) -> bool:
    """A byte string is truthy iff any of its bytes is nonzero."""
    return any(b)


def uint_decode(b: bytes) -> int:
    return int.from_bytes(b, "little")

def uint_encode(n: int) -> bytes:
    # zéro s'encode sur un octet, comme les résultats arithmétiques d'origine
    if n < 0:
        raise ValueError(f"uint_encode: negative value {n}")
    return n.to_bytes(max(1, (n.bit_length() + 7) // 8), "little")


# int()/str() refusent les nombres de plus de ~4300 chiffres : on découpe.
_DEC_CHUNK = 1000

def uint_from_decimal(digits: bytes) -> int:
    """Parse ASCII decimal digits of any length. Raises ValueError otherwise."""
    if not digits or not all(0x30 <= c <= 0x39 for c in digits):
        raise ValueError(f"not a decimal numeral: {digits!r}")
    n = 0
    for i in range(0, len(digits), _DEC_CHUNK):
        chunk = digits[i:i + _DEC_CHUNK]
        n = n * 10 ** len(chunk) + int(chunk.decode("ascii"))
    return n

def uint_to_decimal(n: int) -> bytes:
    if n < 10 ** _DEC_CHUNK:
        return str(n).encode("ascii")
    # diviser pour régner sur une puissance de 10 proche de la moitié
    k = (n.bit_length() * 3 // 10) // 2
    hi, lo = divmod(n, 10 ** k)
    return uint_to_decimal(hi) + uint_to_decimal(lo).rjust(k, b"0")


# ---- Printers ----
def atom_is_printable(b: bytes) -> bool:
    """True if the atom can be written back as surface syntax."""
    return bool(b) and not any(c in DELIMS for c in b)


def to_source(v: Value) -> bytes:
    """Conservative S-expression printer.

    Atoms are written verbatim and lists as parenthesized, space-separated
    sequences. An atom that has no surface form (empty, or carrying a
    separator or a parenthesis) raises ValueError instead of printing
    something that would read back differently.
    """
    parts = []
    # pile explicite : les listes peuvent être profondes
    todo = [v]
    while todo:
        x = todo.pop()
        if x is _CLOSE:
            parts.append(b")")
            continue
        if x is _SPACE:
            parts.append(b" ")
            continue
        if is_bytes(x):
            if not atom_is_printable(x):
                raise ValueError(f"atom has no surface form: {x!r}")
            parts.append(x)
            continue
        if not is_list(x):
            raise ValueError(f"not a value: {x!r}")
        parts.append(b"(")
        todo.append(_CLOSE)
        for i, item in enumerate(reversed(x)):
            if i:
                todo.append(_SPACE)
            todo.append(item)
    return b"".join(parts)

_CLOSE = object()
_SPACE = object()


def describe(v: Value) -> str:
    """Debug rendering for stack dumps and diagnostics.

    Printable ASCII atoms show as themselves; anything else (binary
    integers, the empty atom) shows as `#x` followed by its hex bytes.
    """
    if is_list(v):
        return "(" + " ".join(describe(x) for x in v) + ")"
    if is_bytes(v):
        if atom_is_printable(v) and all(0x21 <= c < 0x7F for c in v) and v[:2] != b"#x":
            return v.decode("ascii")
        return "#x" + v.hex()
    return repr(v)


####################################################################
# Tests

class TestUnsignedCodec(unittest.TestCase):
    def test_zero_has_several_encodings(self):
        self.assertEqual(uint_decode(b""), 0)
        self.assertEqual(uint_decode(b"\x00"), 0)
        self.assertEqual(uint_decode(b"\x00\x00\x00"), 0)

    def test_encode_is_little_endian_and_minimal(self):
        self.assertEqual(uint_encode(0), b"\x00")
        self.assertEqual(uint_encode(5), b"\x05")
        self.assertEqual(uint_encode(256), b"\x00\x01")
        self.assertEqual(uint_encode(2**64), b"\x00" * 8 + b"\x01")

    def test_trailing_zeros_are_ignored(self):
        self.assertEqual(uint_decode(b"\x2a\x00\x00"), 42)

    def test_big_values(self):
        n = 10**40 + 7
        self.assertEqual(uint_decode(uint_encode(n)), n)

    def test_negative_rejected(self):
        with self.assertRaises(ValueError):
            uint_encode(-1)

    def test_decimal_parse(self):
        self.assertEqual(uint_from_decimal(b"0"), 0)
        self.assertEqual(uint_from_decimal(b"007"), 7)
        for bad in (b"", b"+1", b"1_000", b" 1", b"12a", b"\xff"):
            with self.assertRaises(ValueError):
                uint_from_decimal(bad)

    def test_decimal_beyond_str_digit_limit(self):
        digits = b"9" * 6000
        n = uint_from_decimal(digits)
        self.assertEqual(n, 10 ** 6000 - 1)
        self.assertEqual(uint_to_decimal(n), digits)
        self.assertEqual(uint_to_decimal(10 ** 5000), b"1" + b"0" * 5000)


class TestTruthiness(unittest.TestCase):
    def test_any_nonzero_byte(self):
        self.assertTrue(is_truthy(b"\x01"))
        self.assertTrue(is_truthy(b"\x00\x00\x80"))
        self.assertTrue(is_truthy(b"a"))

    def test_false_values_stay_false_with_trailing_zeros(self):
        self.assertFalse(is_truthy(b""))
        self.assertFalse(is_truthy(b"\x00"))
        self.assertFalse(is_truthy(b"\x00" + b"\x00" * 10))


class TestPrinters(unittest.TestCase):
    def test_to_source_nested(self):
        v = (b".|>", ((b".u", b"2"), (b".u-print",)), ())
        self.assertEqual(to_source(v), b"(.|> ((.u 2) (.u-print)) ())")

    def test_to_source_rejects_unprintable_atoms(self):
        for bad in (b"", b"a b", b"(", b"x)y", b"\n"):
            with self.assertRaises(ValueError):
                to_source((bad,))

    def test_to_source_keeps_high_bytes(self):
        self.assertEqual(to_source(("é".encode("utf-8"),)), "(é)".encode("utf-8"))

    def test_describe(self):
        self.assertEqual(describe(b"hello"), "hello")
        self.assertEqual(describe(b"\x05"), "#x05")
        self.assertEqual(describe(b""), "#x")
        self.assertEqual(describe((b"a", (b"\x00",))), "(a (#x00))")

    def test_kind_of(self):
        self.assertEqual(kind_of(b""), "bytes")
        self.assertEqual(kind_of(()), "list")
        self.assertEqual(kind_of(3), "int")


def test_all():
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    runner.run(suite)

if __name__ == "__main__":
    test_all()
