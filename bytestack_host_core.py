#!/usr/bin/env python3
# bytestack_host_core.py
#
# Noyau host logique pour bytestack :
# - gestion des sessions HostedVM (création, destruction, liste)
# - exécution de sources dans une session donnée
# - collecte de la sortie des VMs via stdout_queue, et des erreurs
#
# Pas de REPL, pas de rendu terminal ici : cette couche est faite
# pour être testée unitairement et réutilisée par différentes UIs.
# Tout est synchrone : un run s'exécute dans le thread appelant.

from __future__ import annotations

import queue
import sys
import unittest
from typing import Any, Dict, List, Optional, Tuple

from bytestack_parser import ParseError, Source
from bytestack_runtime import HasStdoutHandler, HostedVM, SessionDeadError
from bytestack_values import VMError
from bytestack_vm_core import VMConfig


class HostCore(HasStdoutHandler):
    """
    Host core, without REPL or terminal I/O.

    Responsibilities:
    - keep the session table (pid -> HostedVM)
    - new_vm / kill_vm / list_vms / reset
    - run sources in a session (run_source)
    - receive VM output (handle_stdout) and push it to stdout_queue
    - record failures (handle_error) in `errors`
    """

    def __init__(self, config: Optional[VMConfig] = None) -> None:
        # sessions gérées par le host : pid -> HostedVM
        self.vms: Dict[int, HostedVM] = {}
        self._next_pid: int = 1
        # config par défaut des nouvelles sessions
        self.config = config

        # tout ce qui sort des VMs, item = (pid, bytes)
        self.stdout_queue: queue.Queue[Tuple[int, bytes]] = queue.Queue()

        # erreurs fatales remontées par les sessions : (pid, message)
        self.errors: List[Tuple[int, str]] = []

        # meta info sur les sessions (nom, etc.)
        self.meta: Dict[int, Dict[str, Any]] = {}

    # ------------------------------------------------------
    # Interface attendue par HostedVM
    # ------------------------------------------------------

    def handle_stdout(self, pid: int, data: bytes) -> None:
        """
        Called by HostedVM.emit(). No terminal I/O here, the bytes only
        go to stdout_queue.
        """
        self.stdout_queue.put((pid, data))

    def handle_error(self, pid: int, err: VMError) -> None:
        self.errors.append((pid, err.format_chain()))

    # ------------------------------------------------------
    # Gestion des sessions (API host)
    # ------------------------------------------------------

    def new_vm(self, name: str = "", config: Optional[VMConfig] = None) -> int:
        """
        Create a fresh session and return its pid.

        name: informative only (kept in meta).
        """
        pid = self._next_pid
        self._next_pid += 1
        self.vms[pid] = HostedVM(self, pid, config or self.config)
        self.meta.setdefault(pid, {})["name"] = name or f"vm{pid}"
        return pid

    def kill_vm(self, pid: int) -> None:
        """
        Stop a session and drop it from the table. Unknown pids are ignored.
        """
        vm = self.vms.pop(pid, None)
        self.meta.pop(pid, None)
        if vm is not None:
            vm.stop()

    def gc_dead_vms(self) -> List[int]:
        dead = [pid for pid, vm in self.vms.items() if not vm.alive]
        for pid in dead:
            self.vms.pop(pid, None)
            self.meta.pop(pid, None)
        return dead

    def run_source(self, pid: int, src: Source) -> bool:
        """
        Run a source in session `pid`.

        Returns True on success. On failure the error has already been
        recorded by handle_error and the session is dead: returns False.
        Raises KeyError for an unknown pid and SessionDeadError for a
        session that failed earlier.
        """
        vm = self.vms.get(pid)
        if vm is None:
            raise KeyError(f"run_source: pid {pid} inconnu")
        try:
            vm.run_source(src)
        except VMError:
            return False
        return True

    def list_vms(self) -> List[Dict[str, Any]]:
        """
        Readable view of the sessions, for display or tests.

        Each entry holds pid, name, alive and depth (stack size).
        """
        result: List[Dict[str, Any]] = []
        for pid, vm in self.vms.items():
            result.append({
                "pid": pid,
                "name": self.meta.get(pid, {}).get("name", f"vm{pid}"),
                "alive": vm.alive,
                "depth": len(vm.D),
            })
        # tri par pid pour un ordre stable
        result.sort(key=lambda d: d["pid"])
        return result

    def drain_stdout(self, pid: Optional[int] = None) -> bytes:
        """
        Empty stdout_queue and return the concatenated output (of `pid`
        only, when given; the other items are dropped).
        """
        chunks: List[bytes] = []
        while True:
            try:
                got_pid, data = self.stdout_queue.get_nowait()
            except queue.Empty:
                break
            if pid is None or got_pid == pid:
                chunks.append(data)
        return b"".join(chunks)

    def reset(self) -> None:
        """
        Reset the host:

        - kill every session
        - restart pids at 1
        - empty stdout_queue and the error log
        """
        for pid in list(self.vms):
            self.kill_vm(pid)
        self.vms.clear()
        self.meta.clear()
        self.errors.clear()
        self._next_pid = 1
        self.drain_stdout()


####################################################################
# Tests

class TestHostCore_NewVm(unittest.TestCase):
    def test_new_vm_creates_session(self) -> None:
        host = HostCore()
        pid = host.new_vm("main")
        self.assertEqual(pid, 1)
        vms = host.list_vms()
        self.assertEqual(len(vms), 1)
        self.assertEqual(vms[0]["pid"], 1)
        self.assertEqual(vms[0]["name"], "main")
        self.assertTrue(vms[0]["alive"])
        self.assertIsInstance(host.vms[pid], HostedVM)

    def test_default_names_and_increasing_pids(self) -> None:
        host = HostCore()
        a, b = host.new_vm(), host.new_vm()
        self.assertEqual((a, b), (1, 2))
        self.assertEqual([v["name"] for v in host.list_vms()], ["vm1", "vm2"])

    def test_sessions_get_host_config(self) -> None:
        host = HostCore(VMConfig(max_depth=5))
        pid = host.new_vm()
        self.assertEqual(host.vms[pid].config.max_depth, 5)
        pid2 = host.new_vm(config=VMConfig(max_depth=9))
        self.assertEqual(host.vms[pid2].config.max_depth, 9)


class TestHostCore_Stdout(unittest.TestCase):
    def test_handle_stdout_pushes_to_stdout_queue(self) -> None:
        host = HostCore()
        host.handle_stdout(1, b"42")
        host.handle_stdout(1, b"\n")

        items: List[Tuple[int, bytes]] = []
        while True:
            try:
                items.append(host.stdout_queue.get_nowait())
            except queue.Empty:
                break
        self.assertEqual(items, [(1, b"42"), (1, b"\n")])

    def test_run_output_is_tagged_by_pid(self) -> None:
        host = HostCore()
        a, b = host.new_vm("a"), host.new_vm("b")
        self.assertTrue(host.run_source(a, ".write from-a"))
        self.assertTrue(host.run_source(b, ".write from-b"))
        self.assertEqual(host.drain_stdout(b), b"from-b")
        self.assertEqual(host.drain_stdout(), b"")


class TestHostCore_Run(unittest.TestCase):
    def setUp(self) -> None:
        self.host = HostCore()
        self.pid = self.host.new_vm("main")

    def test_sessions_keep_state(self) -> None:
        self.host.run_source(self.pid, ".define inc (.|> ((.u 1) (.u+)))")
        self.host.run_source(self.pid, ".u 41")
        self.host.run_source(self.pid, ".|> ( (inc) (.u-print) )")
        self.assertEqual(self.host.drain_stdout(self.pid), b"42\n")

    def test_sessions_are_isolated(self) -> None:
        other = self.host.new_vm("other")
        self.host.run_source(self.pid, ".define x (.u-print 1)")
        self.assertFalse(self.host.run_source(other, "x"))
        self.assertTrue(self.host.vms[self.pid].alive)

    def test_failure_is_logged_and_fatal(self) -> None:
        self.assertFalse(self.host.run_source(self.pid, ".|> ( (.write ok) (nope) )"))
        self.assertEqual(self.host.drain_stdout(self.pid), b"ok")
        (pid, msg), = self.host.errors
        self.assertEqual(pid, self.pid)
        self.assertIn("UnknownWordError", msg)
        self.assertIn("in .|>", msg)
        self.assertFalse(self.host.list_vms()[0]["alive"])
        with self.assertRaises(SessionDeadError):
            self.host.run_source(self.pid, ".write again")

    def test_parse_failure_is_logged(self) -> None:
        self.assertFalse(self.host.run_source(self.pid, ")"))
        self.assertIn(ParseError.__name__, self.host.errors[0][1])

    def test_unknown_pid_raises(self) -> None:
        with self.assertRaises(KeyError):
            self.host.run_source(999, ".write x")


class TestHostCore_Lifecycle(unittest.TestCase):
    def test_kill_vm_removes_and_stops(self) -> None:
        host = HostCore()
        pid = host.new_vm("to_kill")
        vm = host.vms[pid]
        host.kill_vm(pid)
        self.assertEqual(host.list_vms(), [])
        self.assertFalse(vm.alive)
        # pid inconnu : ignoré
        host.kill_vm(pid)

    def test_gc_dead_vms(self) -> None:
        host = HostCore()
        good, bad = host.new_vm(), host.new_vm()
        host.run_source(bad, ".error boom")
        self.assertEqual(host.gc_dead_vms(), [bad])
        self.assertEqual([v["pid"] for v in host.list_vms()], [good])

    def test_reset(self) -> None:
        host = HostCore()
        pid = host.new_vm()
        host.run_source(pid, ".|> ( (.write x) (.error y) )")
        host.reset()
        self.assertEqual(host.list_vms(), [])
        self.assertEqual(host.errors, [])
        self.assertTrue(host.stdout_queue.empty())
        self.assertEqual(host.new_vm(), 1)


def test_all() -> None:
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    runner.run(suite)


if __name__ == "__main__":
    test_all()
