#!/usr/bin/env python3
# bytestack_vm_core.py
#
# Noyau de l'interpréteur bytestack.
# - une seule pile d'opérandes (D) et une table de définitions
# - boucle d'évaluation : tête + arguments empilés, puis recherche du mot
# - primitives réservées (toutes préfixées par ".")
# - sortie centralisée via VM.emit(data)
#
from __future__ import annotations
import io
import struct
import sys
import unittest
from collections import deque
from contextlib import redirect_stdout
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from bytestack_parser import Source, parse, strip_comments
from bytestack_values import (
    TypeMismatchError, Value, VMError, describe, expect_bytes,
    expect_list, is_bytes, is_list, is_truthy, kind_of, to_source, uint_decode,
    uint_encode, uint_from_decimal, uint_to_decimal,
)


class UnknownWordError(VMError):
    def __init__(self, name: bytes) -> None:
        super().__init__(f"unknown word: {describe(name)}")
        self.name = name

class StackUnderflowError(VMError): ...
class DomainError(VMError): ...
class EvalDepthError(DomainError): ...

class UserError(VMError):
    """Raised by `.error`; carries the popped value."""
    def __init__(self, value: Value) -> None:
        super().__init__(f"error raised from VM: {describe(value)}")
        self.value = value


@dataclass(frozen=True)
class TailCall:
    """Returned by a primitive whose last act is evaluating `seq`.

    The eval loop then continues with `seq` in the current frame instead of
    nesting, so loops written as recursion run in constant depth.
    """
    seq: Tuple[Value, ...]


# ------------------------------ Words ----------------------------------------

class CodeClass(Enum):
    PRIMITIVE = "PRIMITIVE"
    DEFINED   = "DEFINED"

@dataclass
class Word:
    name: bytes
    code_class: CodeClass
    body: Any = None
    prim: Optional[Callable[[Any], Optional[TailCall]]] = None
    doc: str = ""

    def is_primitive(self) -> bool: return self.code_class is CodeClass.PRIMITIVE

    def see(self) -> str:
        if self.is_primitive():
            return f"primitive {describe(self.name)}  {self.doc}".rstrip()
        try:
            body = to_source(self.body).decode("utf-8", errors="replace")
        except ValueError:
            body = describe(self.body)
        return f".define {describe(self.name)} {body}"

    # constructors
    @staticmethod
    def primitive(name: bytes, prim: Callable[[Any], Optional[TailCall]], *, doc="") -> "Word":
        return Word(name, CodeClass.PRIMITIVE, None, prim, doc)
    @staticmethod
    def defined(name: bytes, body: Value) -> "Word":
        return Word(name, CodeClass.DEFINED, body)


class WordsDictionary:
    """Two namespaces: user definitions, consulted first, then built-ins.

    Definitions are keyed by the raw name bytes; redefining a name replaces
    the previous body and nothing ever removes one.
    """

    def __init__(self) -> None:
        self._builtins: Dict[bytes, Word] = {}
        self._defs: Dict[bytes, Word] = {}

    def add_primitive(self, name: bytes, prim, *, doc="") -> Word:
        w = Word.primitive(name, prim, doc=doc)
        self._builtins[name] = w
        return w

    def define(self, name: bytes, body: Value) -> Word:
        w = Word.defined(name, body)
        self._defs[name] = w
        return w

    # lookup
    def find(self, name: bytes) -> Optional[Word]:
        w = self._defs.get(name)
        return w if w is not None else self._builtins.get(name)
    def find_definition(self, name: bytes) -> Optional[Word]:
        return self._defs.get(name)

    # introspection
    def definitions(self) -> List[Word]:
        return list(self._defs.values())
    def builtins(self) -> List[Word]:
        return list(self._builtins.values())


# ------------------------------ VM Core --------------------------------------

# Commandes d'inspection côté host (jamais visibles depuis un programme)
INSPECT_CMDS = {"defs", "help", "see", "stack", "words"}

BYTEORDERS = ("little", "native")


@dataclass
class VMConfig:
    # profondeur maximale d'évaluations imbriquées (hors position terminale)
    max_depth: int = 200
    # encodage de la longueur poussée par .peek-len
    len_byteorder: str = "little"

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        if self.len_byteorder not in BYTEORDERS:
            raise ValueError(f"len_byteorder must be one of {BYTEORDERS}")


class VM:

    def __init__(self, config: Optional[VMConfig] = None, *, out: Optional[Any] = None):
        self.config = config or VMConfig()
        self.D: List[Value] = []
        self.dict = WordsDictionary()
        # Sortie binaire ; None = sys.stdout.buffer, résolu à chaque écriture
        self.out = out
        self._depth = 0
        self._install_core()

    # --- Stack ---
    def push(self, v: Value) -> None:
        self.D.append(v)

    def pop(self, opname: str) -> Value:
        if not self.D:
            raise StackUnderflowError(f"{opname}: stack was empty")
        return self.D.pop()

    def pop_bytes(self, opname: str) -> bytes:
        return expect_bytes(self.pop(opname), opname)

    def pop_list(self, opname: str) -> Tuple[Value, ...]:
        return expect_list(self.pop(opname), opname)

    def pop_uint(self, opname: str) -> int:
        return uint_decode(self.pop_bytes(opname))

    def pop_index(self, opname: str) -> int:
        n = self.pop_uint(opname)
        if n > sys.maxsize:
            raise DomainError(f"{opname}: {n} can't be represented as an index")
        return n

    def peek(self, back: int, opname: str) -> Value:
        if back >= len(self.D):
            raise StackUnderflowError(f"{opname}: stack was not {back + 1} deep")
        return self.D[-1 - back]

    def swap_top_with(self, back: int, opname: str) -> None:
        self.peek(back, opname)
        D = self.D
        D[-1], D[-1 - back] = D[-1 - back], D[-1]

    def stack_snapshot(self) -> Tuple[Value, ...]:
        """Read-only copy of the stack, deepest first."""
        return tuple(self.D)

    # --- Evaluation ---
    def eval(self, seq: Tuple[Value, ...]) -> None:
        """Evaluate one call: head word followed by its trailing arguments.

        The arguments are pushed in order, then the head is resolved against
        the user definitions and the built-ins. Calls in tail position
        replace the current call in place (a loop, not a Python call): the
        body of a user definition, the list run by `.`, the last call of a
        `.|>` batch and the branch chosen by `.?`. Only the other calls of a
        batch nest, and nesting is bounded by `config.max_depth`.
        """
        if self._depth >= self.config.max_depth:
            raise EvalDepthError(f"evaluation nested deeper than {self.config.max_depth}")
        self._depth += 1
        # derniers mots traversés, pour la chaîne de contexte d'erreur
        names: deque = deque(maxlen=16)
        try:
            while True:
                if not seq:
                    raise TypeMismatchError("head name", "empty call")
                head = seq[0]
                if not is_bytes(head):
                    raise TypeMismatchError("head name", kind_of(head))
                self.D.extend(seq[1:])
                w = self.dict.find(head)
                if w is None:
                    raise UnknownWordError(head)
                names.append(head)
                if w.code_class is CodeClass.DEFINED:
                    # une définition atome est un alias : on l'appelle seule
                    seq = w.body if is_list(w.body) else (w.body,)
                    continue
                r = w.prim(self)
                if isinstance(r, TailCall):
                    seq = r.seq
                    continue
                return
        except VMError as e:
            for name in reversed(names):
                e.add_context(f"in {describe(name)}")
            raise
        finally:
            self._depth -= 1

    def run(self, top: Tuple[Value, ...]) -> None:
        """Run a parsed top-level list as a single call.

        An empty program does nothing. Errors propagate to the caller and
        leave the stack and definitions as the failure point left them.
        """
        if not top:
            return
        try:
            self.eval(top)
        except RecursionError:
            raise EvalDepthError("Python recursion limit reached") from None

    def run_source(self, src: Source, *, out: Optional[Any] = None) -> bytes:
        """Strip comment lines, parse and run a source text.

        With `out` given, output goes there for the duration of the run and
        whatever this run wrote to it is returned (when it is a buffer).
        """
        if isinstance(src, (str, bytes, bytearray)):
            src = strip_comments(bytes(src) if isinstance(src, bytearray) else src)
        top = parse(src)
        if out is None:
            self.run(top)
            return b""
        old_out = self.out
        start_len = len(out.getvalue()) if hasattr(out, "getvalue") else None
        self.out = out
        try:
            self.run(top)
        finally:
            self.out = old_out
        if start_len is not None:
            return out.getvalue()[start_len:]
        return b""

    def emit(self, data: bytes) -> None:
        """Single output point: write the bytes and flush."""
        target = self.out if self.out is not None else getattr(sys.stdout, "buffer", None)
        if target is None:
            # stdout texte sans tampon binaire (redirigé vers un StringIO)
            sys.stdout.write(data.decode("utf-8", errors="replace"))
            sys.stdout.flush()
            return
        target.write(data)
        flush = getattr(target, "flush", None)
        if flush is not None:
            flush()

    def encode_len(self, n: int) -> bytes:
        if self.config.len_byteorder == "native":
            return n.to_bytes(struct.calcsize("P"), sys.byteorder)
        return uint_encode(n)

    # --- Core primitives ---
    def _install_core(self) -> None:
            W = self.dict
            def addp(name, prim, *, doc=""):
                return W.add_primitive(name.encode("ascii"), prim, doc=doc)

            # Meta / control
            def prim_ERROR(vm):
                raise UserError(vm.pop(".error"))
            addp(".error", prim_ERROR, doc="( v -- ) abort the run with v")

            def prim_EXEC_ALL(vm):
                calls = vm.pop_list(".|>")
                if not calls:
                    return None
                for call in calls[:-1]:
                    vm.eval(expect_list(call, ".|>"))
                # le dernier appel est en position terminale
                return TailCall(expect_list(calls[-1], ".|>"))
            addp(".|>", prim_EXEC_ALL, doc="( calls -- ) evaluate each call in order")

            addp(".", lambda vm: TailCall(vm.pop_list(".")), doc="( call -- ) evaluate a quoted call")

            def prim_IF(vm):
                # Deux dispositions : ( then else cond -- ) ou ( cond then else -- ).
                # Les branches sont des listes et la condition un atome, donc
                # le type du sommet suffit à les distinguer.
                if is_bytes(vm.peek(0, ".?")):
                    cond = vm.pop_bytes(".?")
                    else_ = vm.pop(".?")
                    then = vm.pop(".?")
                else:
                    else_ = vm.pop(".?")
                    then = vm.pop(".?")
                    cond = vm.pop_bytes(".?")
                chosen = then if is_truthy(cond) else else_
                return TailCall(expect_list(chosen, ".?"))
            addp(".?", prim_IF, doc="( then else cond -- ) or ( cond then else -- )")

            # Stack discipline
            addp(".push", lambda vm: None, doc="( -- ) no-op; the call site already pushed")
            def prim_DROP(vm):
                vm.pop(".drop")
            addp(".drop", prim_DROP, doc="( v -- )")

            def prim_DUP(vm):
                n = vm.pop_index(".dup")
                vm.push(vm.peek(n, ".dup"))
            addp(".dup", prim_DUP, doc="( vn .. v0 n -- vn .. v0 vn )")

            def prim_SWAP(vm):
                n = vm.pop_index(".swap")
                vm.swap_top_with(n, ".swap")
            addp(".swap", prim_SWAP, doc="( n -- ) exchange top with depth n")

            def prim_PEEK_LEN(vm):
                v = vm.peek(0, ".peek-len")
                vm.push(vm.encode_len(len(v)))
            addp(".peek-len", prim_PEEK_LEN, doc="( v -- v len )")

            # Definitions
            def prim_DEFINE(vm):
                body = vm.pop(".define")
                name = vm.pop_bytes(".define")
                vm.dict.define(name, body)
            addp(".define", prim_DEFINE, doc="( name body -- )")

            def prim_CHECK_DEF(vm):
                # vérifie seulement la présence ; le corps n'est PAS empilé
                name = vm.pop_bytes(".@")
                if vm.dict.find_definition(name) is None:
                    raise UnknownWordError(name)
            addp(".@", prim_CHECK_DEF, doc="( name -- ) fail unless name is defined; pushes nothing")

            # Byte strings / lists
            addp(".empty-bytes", lambda vm: vm.push(b""), doc="( -- b )")
            addp(".write", lambda vm: vm.emit(vm.pop_bytes(".write")), doc="( b -- ) write bytes to output")

            def prim_APPEND(vm):
                v = vm.pop(".append")
                lst = vm.pop_list(".append")
                vm.push(lst + (v,))
            addp(".append", prim_APPEND, doc="( list v -- list' )")

            # Unsigned arithmetic
            def prim_U(vm):
                digits = vm.pop_bytes(".u")
                try:
                    n = uint_from_decimal(digits)
                except ValueError:
                    raise DomainError(f".u: not a decimal numeral: {describe(digits)}") from None
                vm.push(uint_encode(n))
            addp(".u", prim_U, doc="( digits -- u )")

            def prim_U_PRINT(vm):
                vm.emit(uint_to_decimal(vm.pop_uint(".u-print")) + b"\n")
            addp(".u-print", prim_U_PRINT, doc="( u -- ) print in decimal")

            def binop(opname, fn):
                def prim(vm):
                    rhs = vm.pop_uint(opname)
                    lhs = vm.pop_uint(opname)
                    vm.push(fn(lhs, rhs))
                addp(opname, prim, doc="( lhs rhs -- result )")

            def sub(lhs, rhs):
                if lhs < rhs:
                    raise DomainError(f".u-: {lhs} - {rhs} would be negative")
                return uint_encode(lhs - rhs)

            binop(".u+", lambda a, b: uint_encode(a + b))
            binop(".u-", sub)
            binop(".u<", lambda a, b: bytes([a < b]))
            binop(".u>", lambda a, b: bytes([a > b]))

    # --- Inspect commands via dispatch table ---
    def _inspect_dispatch(self):
            return {
                "help": self._insp_help,
                "stack": self._insp_stack,
                "defs": self._insp_defs,
                "see": self._insp_see,
                "words": self._insp_words,
            }

    def _insp_help(self, args, out):
            out.write("stack | defs [filter] | see <name> | words [filter] | help\n")

    def _insp_stack(self, args, out):
            out.write(f"<{len(self.D)}> " + " ".join(map(describe, self.D)) + " \n")

    def _insp_defs(self, args, out):
            filt = args[0] if args else None
            names = [describe(w.name) for w in self.dict.definitions()]
            if filt:
                names = [n for n in names if filt.lower() in n.lower()]
            out.write(" ".join(sorted(names)) + "\n")

    def _insp_see(self, args, out):
            if not args:
                out.write("unknown: \n"); return
            w = self.dict.find(args[0].encode("utf-8"))
            if not w:
                out.write(f"unknown: {args[0]}\n"); return
            out.write(w.see() + "\n")

    def _insp_words(self, args, out):
            filt = args[0] if args else None
            for w in sorted(self.dict.builtins(), key=lambda w: w.name):
                name = describe(w.name)
                if filt and filt not in name:
                    continue
                out.write(f"{name:14s} {w.doc}\n")

    def handle_inspect_command(self, line: str, out):
            parts = line.split()
            if not parts:
                self._insp_help([], out)
                return
            cmd, args = parts[0], parts[1:]
            h = self._inspect_dispatch().get(cmd)
            if not h:
                out.write(f"unknown inspect command: {cmd}\n")
                return
            h(args, out)


####################################################################
# Tests

class TestVM(unittest.TestCase):
    def setUp(self) -> None:
        self.vm = VM()
        self.out = io.BytesIO()

    def feed(self, src: str) -> bytes:
        return self.vm.run_source(src, out=self.out)

    def stack(self):
        return self.vm.stack_snapshot()

    # -- scenarios --
    def test_empty_write_outputs_nothing(self):
        self.assertEqual(self.feed(".|> ( (.empty-bytes) (.write) )"), b"")
        self.assertEqual(self.stack(), ())

    def test_add_and_print(self):
        self.assertEqual(self.feed(".|> ( (.u 2) (.u 3) (.u+) (.u-print) )"), b"5\n")

    def test_subtract(self):
        self.assertEqual(self.feed(".|> ( (.u 10) (.u 7) (.u-) (.u-print) )"), b"3\n")

    def test_subtract_below_zero_fails(self):
        with self.assertRaises(DomainError) as cm:
            self.feed(".|> ( (.u 5) (.u 7) (.u-) (.u-print) )")
        self.assertEqual(cm.exception.context, ["in .u-", "in .|>"])

    def test_define_and_call(self):
        out = self.feed(".|> ( (.define x (.|> ((.u 41) (.u 1) (.u+)))) (x) (.u-print) )")
        self.assertEqual(out, b"42\n")

    def test_if_with_condition_below_branches(self):
        src = (".|> ( (.u 68) (.u 69) (.u>) "
               "(.push (.|> ((.u 735) (.u-print)))) "
               "(.push (.|> ((.u 90) (.u-print)))) (.?) )")
        self.assertEqual(self.feed(src), b"90\n")
        self.assertEqual(self.stack(), ())

    def test_if_with_condition_on_top(self):
        branches = "(.push (.|> ((.u 1) (.u-print)))) (.push (.|> ((.u 2) (.u-print)))) "
        self.assertEqual(self.feed(".|> ( " + branches + "(.u 1) (.?) )"), b"1\n")
        self.assertEqual(self.feed(".|> ( " + branches + "(.u 0) (.?) )"), b"2\n")
        self.assertEqual(self.stack(), ())

    def test_if_zero_padded_condition_is_false(self):
        # .u 256 - .u 256 -> 0x00 ; une chaîne de zéros reste fausse
        src = ".|> ( (.push (.u 1)) (.push (.u 2)) (.u 256) (.u 256) (.u-) (.?) (.u-print) )"
        self.assertEqual(self.feed(src), b"2\n")

    def test_if_with_text_condition_is_truthy(self):
        self.assertEqual(self.feed(".|> ( (.push (.u 1)) (.push (.u 2)) (.push yes) (.?) (.u-print) )"), b"1\n")

    def test_if_branch_must_be_list(self):
        with self.assertRaises(TypeMismatchError):
            self.feed(".|> ( (.push a) (.push b) (.u 1) (.?) )")

    # -- arithmetic --
    def test_comparisons(self):
        self.feed(".|> ( (.u 3) (.u 4) (.u<) (.u 3) (.u 4) (.u>) (.u 4) (.u 4) (.u<) )")
        self.assertEqual(self.stack(), (b"\x01", b"\x00", b"\x00"))

    def test_big_arithmetic(self):
        a, b = 2**90 + 3, 10**25
        self.feed(f".|> ( (.u {a}) (.u {b}) (.u+) (.u-print) (.u {a}) (.u {b}) (.u-) )")
        self.assertEqual(self.out.getvalue(), str(a + b).encode() + b"\n")
        self.assertEqual(uint_decode(self.stack()[-1]), a - b)

    def test_operands_may_be_zero_padded(self):
        self.vm.push(b"\x05\x00\x00")
        self.vm.push(b"\x02")
        self.feed(".u+")
        self.assertEqual(self.stack(), (b"\x07",))

    def test_u_rejects_non_digits(self):
        for bad in ("12a", "-1", "+3"):
            with self.assertRaises(DomainError):
                self.feed(f".u {bad}")

    def test_u_rejects_empty(self):
        with self.assertRaises(DomainError):
            self.feed(".|> ( (.empty-bytes) (.u) )")

    def test_arith_type_mismatch(self):
        with self.assertRaises(TypeMismatchError):
            self.feed(".|> ( (.push (a)) (.u 1) (.u+) )")

    # -- stack words --
    def test_dup_at_depth(self):
        self.feed(".|> ( (.push a b c) (.u 2) (.dup) )")
        self.assertEqual(self.stack(), (b"a", b"b", b"c", b"a"))

    def test_dup_top_with_empty_index(self):
        self.feed(".|> ( (.push a) (.empty-bytes) (.dup) )")
        self.assertEqual(self.stack(), (b"a", b"a"))

    def test_dup_too_deep_underflows(self):
        with self.assertRaises(StackUnderflowError):
            self.feed(".|> ( (.push a) (.u 1) (.dup) )")

    def test_swap(self):
        self.feed(".|> ( (.push a b c) (.u 2) (.swap) )")
        self.assertEqual(self.stack(), (b"c", b"b", b"a"))
        self.feed(".|> ( (.u 0) (.swap) )")
        self.assertEqual(self.stack(), (b"c", b"b", b"a"))

    def test_swap_needs_depth(self):
        with self.assertRaises(StackUnderflowError):
            self.feed(".|> ( (.push a) (.u 1) (.swap) )")

    def test_huge_index_is_domain_error(self):
        with self.assertRaises(DomainError):
            self.feed(f".|> ( (.push a) (.u {2**80}) (.dup) )")

    def test_drop_and_underflow(self):
        self.feed(".|> ( (.push a b) (.drop) )")
        self.assertEqual(self.stack(), (b"a",))
        with self.assertRaises(StackUnderflowError):
            self.feed(".|> ( (.drop) (.drop) )")

    def test_peek_len_little_endian(self):
        self.feed(".|> ( (.push abc) (.peek-len) (.push (x y)) (.peek-len) )")
        self.assertEqual(self.stack(), (b"abc", b"\x03", (b"x", b"y"), b"\x02"))

    def test_peek_len_native(self):
        vm = VM(VMConfig(len_byteorder="native"))
        vm.run_source(".|> ( (.push abcd) (.peek-len) )", out=io.BytesIO())
        self.assertEqual(vm.stack_snapshot()[-1], (4).to_bytes(struct.calcsize("P"), sys.byteorder))

    # -- definitions --
    def test_redefinition_last_write_wins(self):
        out = self.feed(".|> ( (.define f (.u-print 1)) (.define f (.u-print 2)) (.u 7) (f) )")
        # (.u-print 2) empile l'atome "2" (0x32 = 50) avant d'imprimer
        self.assertEqual(out, b"50\n")

    def test_definition_shadows_builtin(self):
        self.assertEqual(self.feed(".|> ( (.define .drop (.u-print)) (.u 9) (.drop) )"), b"9\n")

    def test_atom_body_is_alias(self):
        self.assertEqual(self.feed(".|> ( (.define show .u-print) (.u 12) (show) )"), b"12\n")

    def test_call_arguments_reach_definitions(self):
        self.feed(".|> ( (.define add (.u+)) (.u 2) (.u 3) (add) )")
        self.assertEqual(self.stack(), (b"\x05",))

    def test_check_definition_pushes_nothing(self):
        self.feed(".|> ( (.define x (.push)) (.@ x) )")
        self.assertEqual(self.stack(), ())
        with self.assertRaises(UnknownWordError):
            self.feed(".@ nope")

    def test_check_definition_ignores_builtins(self):
        with self.assertRaises(UnknownWordError):
            self.feed(".@ .drop")

    def test_definitions_survive_errors(self):
        with self.assertRaises(UnknownWordError):
            self.feed(".|> ( (.define x (.u-print)) (boom) )")
        self.assertIsNotNone(self.vm.dict.find_definition(b"x"))

    # -- lists / output --
    def test_append(self):
        self.feed(".|> ( (.push (a)) (.push b) (.append) (.push (c)) (.append) )")
        self.assertEqual(self.stack(), ((b"a", b"b", (b"c",)),))

    def test_append_builds_runnable_call(self):
        out = self.feed(".|> ( (.push (.u-print)) (.u 33) (.append) (.) )")
        self.assertEqual(out, b"33\n")

    def test_write_raw_bytes(self):
        self.assertEqual(self.feed(".|> ( (.write hello) (.write é) )"), "helloé".encode("utf-8"))

    def test_quoted_eval(self):
        self.assertEqual(self.feed(". (.u-print 7)"), b"55\n")

    # -- errors --
    def test_unknown_word(self):
        with self.assertRaises(UnknownWordError) as cm:
            self.feed(".|> ( (nope) )")
        self.assertEqual(cm.exception.name, b"nope")

    def test_head_must_be_bytes(self):
        with self.assertRaises(TypeMismatchError):
            self.feed("(a)")
        with self.assertRaises(TypeMismatchError):
            self.feed(".|> ( () )")

    def test_batch_elements_must_be_lists(self):
        with self.assertRaises(TypeMismatchError):
            self.feed(".|> ( (.u 1) oops )")

    def test_user_error_carries_value(self):
        with self.assertRaises(UserError) as cm:
            self.feed(".|> ( (.write before) (.error (bad thing)) (.write after) )")
        self.assertEqual(cm.exception.value, (b"bad", b"thing"))
        self.assertEqual(self.out.getvalue(), b"before")

    def test_error_context_names_user_words(self):
        with self.assertRaises(StackUnderflowError) as cm:
            self.feed(".|> ( (.define f (.|> ((.drop)))) (f) )")
        self.assertEqual(cm.exception.context, ["in .drop", "in .|>", "in f", "in .|>"])
        self.assertIn("in f", cm.exception.format_chain())

    def test_state_is_kept_after_failure(self):
        with self.assertRaises(DomainError):
            self.feed(".|> ( (.push a) (.u 1) (.u 2) (.u-) )")
        self.assertEqual(self.stack(), (b"a",))

    def test_runaway_recursion_is_bounded(self):
        vm = VM(VMConfig(max_depth=10))
        with self.assertRaises(EvalDepthError):
            vm.run_source(".|> ( (.define loop (.|> ((loop) (.push)))) (loop) )", out=io.BytesIO())

    def test_default_depth_stays_below_python_limit(self):
        # (loop) n'est pas le dernier appel du lot : chaque tour s'imbrique
        with self.assertRaises(EvalDepthError):
            self.feed(".|> ( (.define loop (.|> ((loop) (.push)))) (loop) )")

    COUNTDOWN = (
        "(.define countdown (.|> ((.u 0) (.dup) (.u-print) "
        "(.u 0) (.dup) (.u 0) (.u>) "
        "(.push (.|> ((.u 1) (.u-) (countdown)))) "
        "(.push (.|> ((.drop)))) (.?))))"
    )

    def test_recursive_loop_runs_in_constant_depth(self):
        out = self.feed(f".|> ( {self.COUNTDOWN} (.u 1000) (countdown) )")
        self.assertEqual(out, b"".join(b"%d\n" % i for i in range(1000, -1, -1)))
        self.assertEqual(self.stack(), ())

    def test_loop_fits_in_a_tiny_depth_limit(self):
        vm = VM(VMConfig(max_depth=3))
        out = vm.run_source(f".|> ( {self.COUNTDOWN} (.u 50) (countdown) )", out=io.BytesIO())
        self.assertEqual(out.splitlines()[-1], b"0")
        self.assertEqual(len(out.splitlines()), 51)

    def test_quoted_call_is_a_tail_position(self):
        vm = VM(VMConfig(max_depth=2))
        src = (".|> ( (.define down (.|> ((.u 0) (.dup) (.u 0) (.u>) "
               "(.push (. (.|> ((.u 1) (.u-) (down))))) (.push (.|> ((.drop)))) (.?)))) "
               "(.u 300) (down) )")
        vm.run_source(src, out=io.BytesIO())
        self.assertEqual(vm.stack_snapshot(), ())

    def test_emit_falls_back_to_text_stdout(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            VM().run_source(".|> ( (.write ok) (.u-print 7) )")
        self.assertEqual(buf.getvalue(), "ok55\n")

    def test_tail_calls_through_definitions_do_not_nest(self):
        vm = VM(VMConfig(max_depth=3))
        src = ".|> ( (.define a (b)) (.define b (c)) (.define c (.u-print)) (.u 4) (a) )"
        self.assertEqual(vm.run_source(src, out=io.BytesIO()), b"4\n")

    def test_empty_program_is_noop(self):
        self.assertEqual(self.feed("// nothing here\n"), b"")

    def test_comments_are_stripped(self):
        src = "// intro\n.|> (\n  // first\n  (.u 1) (.u-print)\n)\n"
        self.assertEqual(self.feed(src), b"1\n")

    def test_dup_copy_is_independent(self):
        self.feed(".|> ( (.push (a)) (.empty-bytes) (.dup) (.push b) (.append) )")
        self.assertEqual(self.stack(), ((b"a",), (b"a", b"b")))


class TestDefinitionEquivalence(unittest.TestCase):
    """Invoking a defined name behaves like evaluating its body."""

    BODIES = [
        "(.|> ((.u 41) (.u 1) (.u+) (.u-print)))",
        "(.u-print 5)",
        "(.write hi)",
    ]

    def test_defined_name_matches_body(self):
        for body in self.BODIES:
            a, b = VM(), VM()
            out_a = a.run_source(f".|> ( (.define w {body}) (w) )", out=io.BytesIO())
            out_b = b.run_source(f". {body}", out=io.BytesIO())
            self.assertEqual(out_a, out_b, body)
            self.assertEqual(a.stack_snapshot(), b.stack_snapshot())


class TestInspectCommands(unittest.TestCase):
    def setUp(self) -> None:
        self.vm = VM()
        self.vm.run_source(".|> ( (.define sq (.|> ((.u 2) (.dup)))) (.u 5) (.push a) )", out=io.BytesIO())

    def run_cmd(self, line: str) -> str:
        out = io.StringIO()
        self.vm.handle_inspect_command(line, out)
        return out.getvalue()

    def test_stack(self):
        self.assertEqual(self.run_cmd("stack"), "<2> #x05 a \n")

    def test_defs(self):
        self.assertEqual(self.run_cmd("defs"), "sq\n")
        self.assertEqual(self.run_cmd("defs zz"), "\n")

    def test_see(self):
        self.assertEqual(self.run_cmd("see sq"), ".define sq (.|> ((.u 2) (.dup)))\n")
        self.assertIn("primitive .u+", self.run_cmd("see .u+"))
        self.assertEqual(self.run_cmd("see nope"), "unknown: nope\n")

    def test_words(self):
        out = self.run_cmd("words .u")
        self.assertIn(".u-print", out)
        self.assertNotIn(".drop", out)

    def test_unknown(self):
        self.assertIn("unknown inspect command", self.run_cmd("frob"))

    def test_all_commands_dispatch(self):
        self.assertEqual(set(self.vm._inspect_dispatch()), INSPECT_CMDS)


class TestConfig(unittest.TestCase):
    def test_rejects_bad_values(self):
        with self.assertRaises(ValueError):
            VMConfig(max_depth=0)
        with self.assertRaises(ValueError):
            VMConfig(len_byteorder="big")


def test_all():
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    runner.run(suite)

if __name__ == "__main__" :
    test_all()
