#!/usr/bin/env python3
# bytestack_parser.py
#
# Lecteur S-expression de bytestack.
# - tokenize : flux d'octets -> jetons "(" / ")" / atome, avec position
# - parse    : jetons -> liste de haut niveau (tuple de valeurs)
# - strip_comments : filtre des lignes "//" appliqué par le driver
#
# Pas de chaînes, pas d'échappements, pas de littéraux numériques :
# tout ce qui n'est ni blanc ni parenthèse est un atome.

from __future__ import annotations

import io
import sys
import unittest
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple, Union

from bytestack_values import WHITESPACE, Value, VMError, to_source

Source = Union[str, bytes, bytearray, "io.RawIOBase", "io.BufferedIOBase"]

OPEN = ord("(")
CLOSE = ord(")")
NEWLINE = ord("\n")
CHUNK_SIZE = 64 * 1024


class ParseError(VMError):
    """Unbalanced parentheses or end of input inside a list."""

    def __init__(self, msg: str, *, line: int, column: int, offset: int,
                 incomplete: bool = False) -> None:
        super().__init__(f"{msg} at line {line}, column {column}")
        self.reason = msg
        self.line = line
        self.column = column
        self.offset = offset
        # vrai seulement si la source s'arrête au milieu d'une liste
        self.incomplete = incomplete


@dataclass(frozen=True)
class Pos:
    offset: int
    line: int
    column: int

    def __repr__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class Token:
    kind: str          # "(" / ")" / "ATOM"
    pos: Pos
    text: bytes = b""


def _iter_chunks(src: Source) -> Iterator[bytes]:
    if isinstance(src, str):
        yield src.encode("utf-8")
        return
    if isinstance(src, (bytes, bytearray)):
        yield bytes(src)
        return
    read = getattr(src, "read", None)
    if read is None:
        raise TypeError(f"cannot read source of type {type(src).__name__}")
    while True:
        chunk = read(CHUNK_SIZE)
        if not chunk:
            return
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        yield chunk


def tokenize(src: Source) -> Iterator[Token]:
    """Lazily split a source into tokens, tracking line and column."""
    offset, line, col = 0, 1, 1
    atom: Optional[bytearray] = None
    atom_pos: Optional[Pos] = None
    for chunk in _iter_chunks(src):
        for c in chunk:
            if c == OPEN or c == CLOSE or c in WHITESPACE:
                if atom is not None:
                    yield Token("ATOM", atom_pos, bytes(atom))
                    atom = None
                if c == OPEN:
                    yield Token("(", Pos(offset, line, col))
                elif c == CLOSE:
                    yield Token(")", Pos(offset, line, col))
            else:
                if atom is None:
                    atom = bytearray()
                    atom_pos = Pos(offset, line, col)
                atom.append(c)
            offset += 1
            if c == NEWLINE:
                line += 1; col = 1
            else:
                col += 1
    if atom is not None:
        yield Token("ATOM", atom_pos, bytes(atom))
    # jeton de fin, utile pour situer "unexpected end of input"
    yield Token("EOF", Pos(offset, line, col))


def parse(src: Source) -> Tuple[Value, ...]:
    """Read a whole source into the top-level list of expressions.

    The reader keeps an explicit stack of open lists, so nesting depth is
    bounded by memory and not by the Python recursion limit.
    """
    top: List[Value] = []
    # (éléments en cours, position de la parenthèse ouvrante)
    open_lists: List[Tuple[List[Value], Pos]] = []
    current = top
    for tok in tokenize(src):
        if tok.kind == "ATOM":
            current.append(tok.text)
        elif tok.kind == "(":
            open_lists.append((current, tok.pos))
            current = []
        elif tok.kind == ")":
            if not open_lists:
                p = tok.pos
                raise ParseError("unexpected ')'", line=p.line, column=p.column, offset=p.offset)
            finished = tuple(current)
            current, _ = open_lists.pop()
            current.append(finished)
        else:
            if open_lists:
                _, p = open_lists[-1]
                raise ParseError("unexpected end of input: '(' never closed",
                                 line=p.line, column=p.column, offset=p.offset,
                                 incomplete=True)
    return tuple(top)


def parse_one(src: Source) -> Value:
    """Parse a source holding exactly one expression."""
    exprs = parse(src)
    if len(exprs) != 1:
        raise ValueError(f"expected exactly one expression, got {len(exprs)}")
    return exprs[0]


def strip_comments(src: Union[str, bytes]) -> bytes:
    """Blank out lines whose first non-whitespace characters are `//`.

    Blanked lines keep their newline so parse error positions still point
    at the line they came from.
    """
    if isinstance(src, str):
        src = src.encode("utf-8")
    out = []
    for ln in src.splitlines(keepends=True):
        if ln.lstrip(WHITESPACE).startswith(b"//"):
            out.append(b"\n" if ln.endswith((b"\n", b"\r")) else b"")
        else:
            out.append(ln)
    return b"".join(out)


####################################################################
# Tests

class TestParser(unittest.TestCase):
    def test_empty_list_inside_list(self):
        self.assertEqual(parse("(())"), (((),),))

    def test_nested(self):
        self.assertEqual(parse("(a b (c d))"), ((b"a", b"b", (b"c", b"d")),))

    def test_top_level_sequence(self):
        self.assertEqual(parse(".|> ( (.u 2) )"), (b".|>", ((b".u", b"2"),)))

    def test_whitespace_runs_are_one_separator(self):
        self.assertEqual(parse(" a \t\r\n  b\n"), (b"a", b"b"))

    def test_parens_end_atoms(self):
        self.assertEqual(parse("a(b)c"), (b"a", (b"b",), b"c"))

    def test_empty_source(self):
        self.assertEqual(parse(""), ())
        self.assertEqual(parse("  \n "), ())

    def test_atoms_keep_raw_bytes(self):
        self.assertEqual(parse(b"\x00\xff z"), (b"\x00\xff", b"z"))
        self.assertEqual(parse("é"), ("é".encode("utf-8"),))

    def test_unclosed_list_fails_with_position(self):
        with self.assertRaises(ParseError) as cm:
            parse("(()")
        err = cm.exception
        self.assertTrue(err.incomplete)
        self.assertEqual((err.line, err.column), (1, 1))

    def test_stray_close_fails(self):
        with self.assertRaises(ParseError) as cm:
            parse("a\n  )")
        err = cm.exception
        self.assertFalse(err.incomplete)
        self.assertEqual((err.line, err.column, err.offset), (2, 3, 4))
        self.assertIn("line 2", str(err))

    def test_reads_binary_stream_lazily(self):
        stream = io.BytesIO(b"(a " * 3 + b")))")
        self.assertEqual(parse(stream), ((b"a", (b"a", (b"a",))),))

    def test_deep_nesting_does_not_recurse(self):
        depth = 5000
        v = parse("(" * depth + ")" * depth)[0]
        for _ in range(depth - 1):
            self.assertEqual(len(v), 1)
            v = v[0]
        self.assertEqual(v, ())

    def test_printed_values_read_back(self):
        v = (b".define", b"x", (b".|>", ((b".u", b"41"), (b".u", b"1"), (b".u+",))), ())
        self.assertEqual(parse_one(to_source(v)), v)

    def test_parse_one_requires_single_expression(self):
        with self.assertRaises(ValueError):
            parse_one("a b")


class TestStripComments(unittest.TestCase):
    def test_comment_lines_are_blanked(self):
        src = "// header\n.|> (\n   // inner\n  (.u 1)\n)\n"
        self.assertEqual(strip_comments(src), b"\n.|> (\n\n  (.u 1)\n)\n")

    def test_only_leading_slashes_count(self):
        self.assertEqual(strip_comments("a // b\n"), b"a // b\n")

    def test_positions_survive_stripping(self):
        with self.assertRaises(ParseError) as cm:
            parse(strip_comments("// c\n// d\n)"))
        self.assertEqual(cm.exception.line, 3)


def test_all():
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    runner.run(suite)

if __name__ == "__main__":
    test_all()
