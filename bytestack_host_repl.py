#!/usr/bin/env python3
# bytestack_host_repl.py
#
# Driver et REPL host pour bytestack :
# - `bytestack FILE...` / `bytestack -e CODE` : exécution d'un programme
#   dans une VM écrivant sur la vraie sortie standard
# - sans argument : REPL par-dessus HostCore (une session par VM)
#
# Commandes host (préfixe :host) :
#   :host new [name]        -> crée une session, devient courante
#   :host vm PID            -> change de session courante
#   :host ps                -> liste des sessions (pid, alive, depth, name)
#   :host kill PID          -> tue une session
#   :host gc                -> retire les sessions mortes
#   :host logs [PID]        -> sortie accumulée de PID (ou de la courante)
#   :host read-from FILE    -> exécute un fichier (lignes :host comprises)
#   :host stack | defs | see NAME | words  -> inspection de la session
#   :host quit              -> quitte le REPL
#
# Une ligne qui laisse une parenthèse ouverte attend la suite.
#
# Tests intégrés :
#   python bytestack_host_repl.py --test

from __future__ import annotations

import argparse
import io
import os
import shlex
import sys
import tempfile
import traceback
import unittest
from contextlib import redirect_stderr, redirect_stdout
from typing import Dict, List, Optional, Sequence

from bytestack_host_core import HostCore
from bytestack_parser import ParseError, parse, strip_comments
from bytestack_runtime import HostedVM
from bytestack_values import VMError, describe
from bytestack_vm_core import INSPECT_CMDS, VM, VMConfig

HOST_CMDS = ["new", "vm", "ps", "kill", "gc", "logs", "read-from", "quit", "help"]


def needs_more(text: str) -> bool:
    """True if `text` stops inside an open list."""
    try:
        parse(strip_comments(text))
    except ParseError as e:
        return e.incomplete
    return False


def _write_out(data: bytes) -> None:
    # octets bruts si possible, sinon (StringIO de test, patch_stdout) texte
    buf = getattr(sys.stdout, "buffer", None)
    if buf is not None:
        sys.stdout.flush()
        buf.write(data)
        buf.flush()
    else:
        sys.stdout.write(data.decode("utf-8", errors="replace"))
        sys.stdout.flush()


class HostREPL:
    """
    Text REPL over HostCore.

    - sessions via :host new / vm / ps / kill / logs / quit
    - bytestack source goes to the current session
    - :host stack / defs / see / words inspect the current session
    """

    def __init__(self, config: Optional[VMConfig] = None) -> None:
        self.host = HostCore(config)
        self.current_pid: int = self.host.new_vm("main")

        # sortie brute par pid (tout ce qui passe par host.handle_stdout)
        self._logs: Dict[int, List[bytes]] = {}

        # lignes en attente tant qu'une liste reste ouverte
        self._pending: List[str] = []

    # ------------------------------------------------------------------
    # Utilitaires internes
    # ------------------------------------------------------------------

    def _get_vm(self, pid: int) -> Optional[HostedVM]:
        return self.host.vms.get(pid)

    def _drain_stdout(self) -> None:
        """
        Empty the host stdout_queue: everything goes to the logs, only the
        current session is shown on the terminal.
        """
        q = self.host.stdout_queue
        while not q.empty():
            pid, data = q.get_nowait()
            self._logs.setdefault(pid, []).append(data)
            if pid == self.current_pid:
                _write_out(data)

    def _print_ps(self) -> None:
        vms = self.host.list_vms()
        if not vms:
            print("(no VMs)")
            return
        print(" PID   ALIVE  DEPTH  NAME")
        print(" ----  -----  -----  ----------------")
        for info in vms:
            pid = info["pid"]
            alive = "yes" if info["alive"] else "no"
            cur_mark = "*" if pid == self.current_pid else " "
            print(f"{cur_mark}{pid:4d}  {alive:5s}  {info['depth']:5d}  {info['name']}")

    def _print_logs(self, pid: int) -> None:
        buf = self._logs.get(pid)
        if not buf:
            print(f"(no logs for pid {pid})")
            return
        print(f"--- logs for pid {pid} ---")
        data = b"".join(buf)
        _write_out(data if data.endswith(b"\n") else data + b"\n")
        print(f"--- end logs for pid {pid} ---")

    def _live_current_vm(self) -> Optional[HostedVM]:
        vm = self._get_vm(self.current_pid)
        if vm is None:
            print("no current VM; use :host new or :host vm.")
            return None
        if not vm.alive:
            print(f"VM {self.current_pid} is dead; use :host new or :host vm to select a live VM.")
            return None
        return vm

    def _run_on_current_vm(self, src: str) -> bool:
        """
        Run a complete source in the current session and show its output.
        A failure is printed with its context chain; the session is then dead.
        """
        if self._live_current_vm() is None:
            return False
        ok = self.host.run_source(self.current_pid, src)
        self._drain_stdout()
        if not ok:
            _pid, msg = self.host.errors[-1]
            print(f"\nerror in VM {self.current_pid}: {msg}")
        return ok

    def feed_line(self, line: str) -> bool:
        """
        Feed one input line. Lines are buffered while a list is still open.
        Returns True when more input is expected.
        """
        self._pending.append(line)
        text = "\n".join(self._pending)
        if needs_more(text):
            return True
        self._pending.clear()
        if text.strip():
            self._run_on_current_vm(text)
        return False

    # ------------------------------------------------------------------
    # Commandes :host ...
    # ------------------------------------------------------------------

    def _handle_host_command(self, line: str) -> bool:
        """
        Handle a line starting with ':host'.
        Returns True once the command was handled.
        Raises SystemExit for :host quit.
        """
        rest = line.strip()[len(":host"):].strip()
        if not rest:
            self._print_help()
            return True

        # shlex pour respecter les guillemets : :host read-from "mon script.bs"
        try:
            parts = shlex.split(rest)
        except ValueError as e:
            print(f"parse error in :host command: {e}")
            return True

        cmd, args = parts[0], parts[1:]

        # 1) inspection de la session courante
        if cmd in INSPECT_CMDS and cmd != "help":
            vm = self._get_vm(self.current_pid)
            if vm is None:
                print("no current VM")
                return True
            # l'inspection reste permise sur une session morte (post-mortem)
            out = io.StringIO()
            vm.handle_inspect_command(rest, out)
            sys.stdout.write(out.getvalue())
            sys.stdout.flush()
            return True

        if cmd == "read-from":
            if not args:
                print('usage: :host read-from "filename"')
                return True
            self._read_from(args[0])
            return True

        if cmd == "new":
            name = args[0] if args else ""
            pid = self.host.new_vm(name)
            self.current_pid = pid
            print(f"NEW pid={pid} name={self.host.meta[pid]['name']!r}")
            return True

        if cmd == "vm":
            if not args:
                print(f"current VM pid={self.current_pid}")
                return True
            try:
                pid = int(args[0])
            except ValueError:
                print("usage: :host vm PID")
                return True
            if pid not in self.host.vms:
                print(f"no such VM pid={pid}")
                return True
            self.current_pid = pid
            print(f"switched to pid={pid}")
            return True

        if cmd == "ps":
            self._print_ps()
            return True

        if cmd == "kill":
            try:
                pid = int(args[0])
            except (IndexError, ValueError):
                print("usage: :host kill PID")
                return True
            self.host.kill_vm(pid)
            if pid == self.current_pid:
                remaining = self.host.list_vms()
                if remaining:
                    self.current_pid = remaining[0]["pid"]
                    print(f"killed pid={pid}, switched to pid={self.current_pid}")
                else:
                    print(f"killed pid={pid}, no VMs left")
            else:
                print(f"killed pid={pid}")
            return True

        if cmd == "gc":
            dead = self.host.gc_dead_vms()
            if not dead:
                print("no dead VMs")
                return True
            print("collected pids: " + " ".join(map(str, dead)))
            if self.current_pid in dead:
                remaining = self.host.list_vms()
                if remaining:
                    self.current_pid = remaining[0]["pid"]
                    print(f"switched to pid={self.current_pid}")
                else:
                    print("no VMs left")
            return True

        if cmd == "logs":
            if args:
                try:
                    pid = int(args[0])
                except ValueError:
                    print("usage: :host logs [PID]")
                    return True
            else:
                pid = self.current_pid
            self._print_logs(pid)
            return True

        if cmd in ("quit", "exit"):
            self.host.reset()
            print("bye.")
            raise SystemExit(0)

        if cmd in ("help", "?"):
            self._print_help()
            return True

        print(f"unknown host command: {cmd!r}")
        self._print_help()
        return True

    def _read_from(self, filename: str) -> None:
        """
        Execute a file: `:host` lines go to the host parser, everything else
        is fed to the current session, with the usual continuation rules.
        """
        try:
            with open(filename, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            print(f"read-from: cannot open {filename!r}: {e}")
            return
        for ln in lines:
            if not self._pending and ln.strip().startswith(":host"):
                self._handle_host_command(ln)
            else:
                self.feed_line(ln)
        if self._pending:
            print(f"read-from: {filename!r} ends inside an open list")
            self._pending.clear()

    def _print_help(self) -> None:
        print("Host commands (prefix with :host):")
        print("  :host new [name]           - create a session")
        print("  :host vm PID               - switch current session")
        print("  :host ps                   - list sessions")
        print("  :host kill PID             - kill session")
        print("  :host gc                   - drop dead sessions")
        print("  :host logs [PID]           - show output of PID (or current)")
        print("  :host read-from \"file\"     - execute host commands + source from file")
        print("  :host stack                - show the operand stack")
        print("  :host defs [filter]        - list user definitions")
        print("  :host see NAME             - show a definition or primitive")
        print("  :host words [filter]       - list built-in words")
        print("  :host quit                 - exit REPL")

    # ------------------------------------------------------------------
    # Boucle principale (PromptSession)
    # ------------------------------------------------------------------

    def run(self) -> None:
        """
        Interactive loop on prompt_toolkit, with completion of :host
        commands, file names for :host read-from and word names of the
        current session.
        """
        try:
            from prompt_toolkit import PromptSession
            from prompt_toolkit.completion import Completer, Completion, PathCompleter
        except ImportError:  # pragma: no cover
            print("prompt_toolkit n'est pas installé. Fais : pip install prompt_toolkit")
            sys.exit(1)

        print("bytestack host REPL")
        print("Type source to run it in the current VM.")
        print("Use :host ... for host commands.  (:host help for help)")

        outer = self
        cmd_names = HOST_CMDS + sorted(INSPECT_CMDS - {"help"})
        path_completer = PathCompleter(expanduser=True)

        class BytestackCompleter(Completer):
            def get_completions(self, document, complete_event):
                stripped = document.text_before_cursor.lstrip()

                # --- commandes :host ---
                if stripped.startswith(":host"):
                    parts = stripped[len(":host"):].split()
                    ends_with_space = stripped.endswith(" ")
                    if not parts or (len(parts) == 1 and not ends_with_space):
                        frag = parts[0] if parts else ""
                        for name in cmd_names:
                            if name.startswith(frag):
                                yield Completion(name, start_position=-len(frag))
                        return
                    if parts[0] == "read-from":
                        yield from path_completer.get_completions(document, complete_event)
                    return

                # --- noms de mots de la session courante ---
                vm = outer._get_vm(outer.current_pid)
                if vm is None:
                    return
                prefix = document.get_word_before_cursor(WORD=True).lstrip("(")
                if not prefix:
                    return
                words = vm.dict.definitions() + vm.dict.builtins()
                seen = set()
                for w in words:
                    name = describe(w.name)
                    if name in seen:
                        continue
                    seen.add(name)
                    if name.startswith(prefix):
                        yield Completion(name, start_position=-len(prefix))

        session = PromptSession(completer=BytestackCompleter())

        while True:
            try:
                if self._pending:
                    prompt = "... "
                else:
                    prompt = f"[pid={self.current_pid}] bytestack> "
                line = session.prompt(prompt)
            except EOFError:
                print("\nEOF -> quitting.")
                break
            except KeyboardInterrupt:
                if self._pending:
                    self._pending.clear()
                    print("(input discarded)")
                else:
                    print("\nKeyboardInterrupt (Ctrl-C). Use ':host quit' to exit.")
                continue

            try:
                if not self._pending and line.strip().startswith(":host"):
                    self._handle_host_command(line)
                    continue
                self.feed_line(line)
            except SystemExit:
                return
            except Exception:
                # bug côté host : on l'affiche sans quitter le REPL
                print(traceback.format_exc())


# ======================================================================
# Driver
# ======================================================================

def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bytestack",
        description="Run bytestack programs, or start the host REPL without arguments.",
    )
    p.add_argument("files", nargs="*", metavar="FILE",
                   help="program files to run in order ('-' reads standard input)")
    p.add_argument("-e", dest="code", action="append", default=[], metavar="CODE",
                   help="run CODE after the files (repeatable)")
    p.add_argument("--stack", action="store_true",
                   help="print the final stack to standard error")
    p.add_argument("--max-depth", type=int, default=VMConfig.max_depth, metavar="N",
                   help="maximum nesting of evaluations (default: %(default)s)")
    p.add_argument("--native-len", action="store_true",
                   help=".peek-len pushes a native-size machine word")
    p.add_argument("--test", action="store_true",
                   help="run the embedded unit tests of every module")
    return p


def _read_program(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


def run_tests() -> bool:
    import bytestack_host_core
    import bytestack_parser
    import bytestack_runtime
    import bytestack_values
    import bytestack_vm_core

    loader = unittest.TestLoader()
    suite = unittest.TestSuite()
    for mod in (bytestack_values, bytestack_parser, bytestack_vm_core,
                bytestack_runtime, bytestack_host_core, sys.modules[__name__]):
        suite.addTests(loader.loadTestsFromModule(mod))
    result = unittest.TextTestRunner(verbosity=2).run(suite)
    return result.wasSuccessful()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.test:
        return 0 if run_tests() else 1

    try:
        config = VMConfig(
            max_depth=args.max_depth,
            len_byteorder="native" if args.native_len else "little",
        )
    except ValueError as e:
        print(f"bytestack: {e}", file=sys.stderr)
        return 2

    if not args.files and not args.code:
        HostREPL(config).run()
        return 0

    sources = []
    for path in args.files:
        try:
            sources.append((path, _read_program(path)))
        except OSError as e:
            print(f"bytestack: cannot read {path!r}: {e.strerror or e}", file=sys.stderr)
            return 2
    sources.extend(("-e", code) for code in args.code)

    vm = VM(config)
    for name, src in sources:
        try:
            vm.run_source(src)
        except VMError as e:
            print(f"{name}: error: {e.format_chain()}", file=sys.stderr)
            return 1
        except OSError as e:
            # sortie standard fermée (tube cassé)
            print(f"bytestack: cannot write output: {e.strerror or e}", file=sys.stderr)
            return 2

    if args.stack:
        print(" ".join(map(describe, vm.stack_snapshot())), file=sys.stderr)
    return 0


# ======================================================================
# Tests intégrés (python bytestack_host_repl.py --test)
# ======================================================================

class TestHostREPL_Basics(unittest.TestCase):
    def setUp(self):
        # pas de repl.run() : uniquement l'API interne
        self.repl = HostREPL()

    def cmd(self, line: str) -> str:
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._handle_host_command(line)
        return buf.getvalue()

    def feed(self, *lines: str) -> str:
        buf = io.StringIO()
        with redirect_stdout(buf):
            for ln in lines:
                self.repl.feed_line(ln)
        return buf.getvalue()

    def test_host_new_creates_vm_and_sets_current(self):
        initial_pid = self.repl.current_pid
        out = self.cmd(":host new worker")
        self.assertIn("NEW pid=", out)
        self.assertNotEqual(self.repl.current_pid, initial_pid)
        self.assertIn(self.repl.current_pid, self.repl.host.vms)

    def test_host_vm_switch(self):
        pid_main = self.repl.current_pid
        self.cmd(":host new worker")
        self.assertNotEqual(self.repl.current_pid, pid_main)
        self.cmd(f":host vm {pid_main}")
        self.assertEqual(self.repl.current_pid, pid_main)
        self.assertIn("no such VM", self.cmd(":host vm 99"))

    def test_host_ps_lists_vms(self):
        self.cmd(":host new worker")
        out = self.cmd(":host ps")
        for col in ("PID", "ALIVE", "DEPTH", "NAME", "worker"):
            self.assertIn(col, out)

    def test_run_shows_output(self):
        self.assertEqual(self.feed(".|> ( (.u 2) (.u 3) (.u+) (.u-print) )"), "5\n")

    def test_open_list_waits_for_more_input(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.assertTrue(self.repl.feed_line(".|> ("))
            self.assertTrue(self.repl.feed_line("  // comment"))
            self.assertTrue(self.repl.feed_line("  (.u 7) (.u-print)"))
            self.assertFalse(self.repl.feed_line(")"))
        self.assertEqual(buf.getvalue(), "7\n")

    def test_stray_paren_is_an_error_not_a_continuation(self):
        out = self.feed(")")
        self.assertIn("ParseError", out)
        self.assertFalse(self.repl.host.vms[self.repl.current_pid].alive)

    def test_error_kills_session_and_is_reported(self):
        out = self.feed(".|> ( (.u 5) (.u 7) (.u-) )")
        self.assertIn("DomainError", out)
        self.assertIn("in .u-", out)
        out = self.feed(".write x")
        self.assertIn("dead", out.lower())

    def test_inspection_commands(self):
        self.feed(".|> ( (.define sq (.u-print)) (.push a) )")
        self.assertEqual(self.cmd(":host stack"), "<1> a \n")
        self.assertEqual(self.cmd(":host defs"), "sq\n")
        self.assertIn(".define sq", self.cmd(":host see sq"))
        self.assertIn(".u-print", self.cmd(":host words .u"))

    def test_help(self):
        out = self.cmd(":host help")
        self.assertIn(":host read-from", out)
        self.assertIn(":host stack", out)

    def test_unknown_host_command(self):
        self.assertIn("unknown host command", self.cmd(":host frob"))


class TestHostREPL_LogsAndLifecycle(unittest.TestCase):
    def setUp(self):
        self.repl = HostREPL()

    def test_logs_collect_output_of_every_session(self):
        main_pid = self.repl.current_pid
        with redirect_stdout(io.StringIO()):
            self.repl._handle_host_command(":host new other")
        other = self.repl.current_pid
        # sortie d'une session non courante : loguée, pas affichée
        self.repl.host.handle_stdout(main_pid, b"hello\n")
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._drain_stdout()
        self.assertEqual(buf.getvalue(), "")
        self.assertEqual(self.repl._logs[main_pid], [b"hello\n"])

        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._handle_host_command(f":host logs {main_pid}")
        self.assertIn("logs for pid", buf.getvalue())
        self.assertIn("hello", buf.getvalue())

        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._handle_host_command(f":host logs {other}")
        self.assertIn("no logs", buf.getvalue())

    def test_kill_current_switches(self):
        first = self.repl.current_pid
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._handle_host_command(":host new second")
            second = self.repl.current_pid
            self.repl._handle_host_command(f":host kill {second}")
        self.assertEqual(self.repl.current_pid, first)
        self.assertIn("switched to", buf.getvalue())

    def test_gc_drops_dead_sessions(self):
        first = self.repl.current_pid
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._handle_host_command(":host gc")
            self.repl._handle_host_command(":host new second")
            second = self.repl.current_pid
            self.repl.feed_line(".error boom")
            self.repl._handle_host_command(":host gc")
        out = buf.getvalue()
        self.assertIn("no dead VMs", out)
        self.assertIn(f"collected pids: {second}", out)
        self.assertEqual(self.repl.current_pid, first)
        self.assertNotIn(second, self.repl.host.vms)

    def test_host_quit_raises_systemexit(self):
        with redirect_stdout(io.StringIO()):
            with self.assertRaises(SystemExit):
                self.repl._handle_host_command(":host quit")

    def test_read_from_file(self):
        script = (
            ":host new scripted\n"
            ".|> (\n"
            "  (.define twice (.|> ((.u 0) (.dup) (.u+))))\n"
            ")\n"
            ".|> ( (.u 21) (twice) (.u-print) )\n"
        )
        fd, path = tempfile.mkstemp(suffix=".bs")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(script)
            buf = io.StringIO()
            with redirect_stdout(buf):
                self.repl._handle_host_command(f':host read-from "{path}"')
        finally:
            os.unlink(path)
        self.assertIn("NEW pid=2", buf.getvalue())
        self.assertIn("42\n", buf.getvalue())
        self.assertEqual(self.repl.current_pid, 2)

    def test_read_from_missing_file(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._handle_host_command(":host read-from /nonexistent/file.bs")
        self.assertIn("cannot open", buf.getvalue())


class TestDriver(unittest.TestCase):
    def run_main(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(argv)
        return code, err.getvalue()

    def write_tmp(self, text: str) -> str:
        fd, path = tempfile.mkstemp(suffix=".bs")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        self.addCleanup(os.unlink, path)
        return path

    def test_success_with_stack_dump(self):
        code, err = self.run_main(["-e", ".|> ( (.push a) (.u 5) )", "--stack"])
        self.assertEqual(code, 0)
        self.assertEqual(err.strip(), "a #x05")

    def test_eval_error_exits_1(self):
        code, err = self.run_main(["-e", ".|> ( (nope) )"])
        self.assertEqual(code, 1)
        self.assertIn("UnknownWordError", err)
        self.assertIn("in .|>", err)

    def test_parse_error_exits_1(self):
        path = self.write_tmp("// header\n.|> ( (.u 1)\n")
        code, err = self.run_main([path])
        self.assertEqual(code, 1)
        self.assertIn("line 2", err)

    def test_missing_file_exits_2(self):
        code, err = self.run_main(["/nonexistent/prog.bs"])
        self.assertEqual(code, 2)
        self.assertIn("cannot read", err)

    def test_bad_config_exits_2(self):
        code, err = self.run_main(["--max-depth", "0", "-e", ".push"])
        self.assertEqual(code, 2)

    def test_files_share_one_vm(self):
        lib = self.write_tmp(".define five (.u 5)\n")
        code, err = self.run_main([lib, "-e", ".|> ( (five) )", "--stack"])
        self.assertEqual(code, 0)
        self.assertEqual(err.strip(), "#x05")

    def test_output_on_text_stdout(self):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(["-e", ".|> ( (.u 2) (.u 3) (.u+) (.u-print) )"])
        self.assertEqual(code, 0)
        self.assertEqual(out.getvalue(), "5\n")

    def test_closed_output_exits_2(self):
        class ClosedPipe(io.StringIO):
            def write(self, s):
                raise BrokenPipeError(32, "Broken pipe")

        err = io.StringIO()
        with redirect_stdout(ClosedPipe()), redirect_stderr(err):
            code = main(["-e", ".write x"])
        self.assertEqual(code, 2)
        self.assertIn("cannot write output", err.getvalue())

    def test_long_recursive_loop(self):
        prog = (".|> ( (.define countdown (.|> ((.u 0) (.dup) (.u 0) (.u>) "
                "(.push (.|> ((.u 1) (.u-) (countdown)))) (.push (.|> ((.drop)))) (.?)))) "
                "(.u 5000) (countdown) (.push done) )")
        code, err = self.run_main(["-e", prog, "--stack"])
        self.assertEqual(code, 0)
        self.assertEqual(err.strip(), "done")

    def test_depth_limit_flag(self):
        code, err = self.run_main(["--max-depth", "4", "-e",
                                   ".|> ( (.define r (.|> ((r) (.push)))) (r) )"])
        self.assertEqual(code, 1)
        self.assertIn("EvalDepthError", err)


def test_all() -> None:
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    runner.run(suite)


if __name__ == "__main__":
    sys.exit(main())
