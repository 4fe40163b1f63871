#!/usr/bin/env python3
# bytestack_runtime.py
#
# Couche "hébergée" au-dessus du noyau bytestack_vm_core.VM :
# - HostedVM : VM avec pid, host, état alive
# - toute la sortie passe par host.handle_stdout(pid, data)
# - une erreur est fatale pour la session : elle est remontée au host
#   et la VM est marquée morte
# Ce fichier ne contient PAS la gestion des sessions (bytestack_host_core).

from __future__ import annotations

import io
import sys
import unittest
from typing import Any, List, Optional, Tuple

from bytestack_parser import ParseError, Source
from bytestack_values import VMError
from bytestack_vm_core import VM, DomainError, UserError, VMConfig


# ============================================================
# Protocole host minimal
# ============================================================

class HasStdoutHandler:
    """
    Minimal host protocol as seen by a HostedVM.

    A real host provides:
      - handle_stdout(pid: int, data: bytes) -> None
      - handle_error(pid: int, err: VMError) -> None
    """

    def handle_stdout(self, pid: int, data: bytes) -> None:
        raise NotImplementedError

    def handle_error(self, pid: int, err: VMError) -> None:
        raise NotImplementedError


class SessionDeadError(RuntimeError):
    """A run was requested on a session that already failed."""


# ============================================================
# HostedVM : VM + pid + host
# ============================================================

class HostedVM(VM):
    """
    VM embedded in a host.

    Responsibilities:
    - route output bytes to host.handle_stdout(pid, data)
    - report failures to host.handle_error(pid, err) and stop accepting
      runs afterwards (errors are fatal for a session)
    """

    def __init__(self, host: HasStdoutHandler, pid: int,
                 config: Optional[VMConfig] = None) -> None:
        super().__init__(config)
        self.host: HasStdoutHandler = host
        self.pid: int = pid
        self.alive: bool = True
        self.exit_reason: Optional[str] = None

    # ----------------- IO : override emit -----------------

    def emit(self, data: bytes) -> None:
        """
        Override: output goes to the host, never straight to a stream.
        """
        if data:
            self.host.handle_stdout(self.pid, data)

    # ----------------- Runs -----------------

    def run_source(self, src: Source, *, out: Optional[Any] = None) -> bytes:
        """
        Run a source in this session.

        A failure is handed to the host, the VM is marked dead and the
        error is re-raised so the caller can decide on an exit status.
        """
        if not self.alive:
            raise SessionDeadError(f"VM {self.pid} is dead ({self.exit_reason})")
        try:
            return super().run_source(src, out=out)
        except VMError as e:
            self.alive = False
            self.exit_reason = type(e).__name__
            self.host.handle_error(self.pid, e)
            raise

    def stop(self) -> None:
        """Mark the VM dead without an error (host kill)."""
        self.alive = False
        self.exit_reason = self.exit_reason or "killed"


# ============================================================
# FakeHost pour tests unitaires de HostedVM
# ============================================================

class FakeHost(HasStdoutHandler):
    """
    Fake host to test HostedVM without the full HostCore.
    """

    def __init__(self) -> None:
        self.stdout_events: List[Tuple[int, bytes]] = []
        self.error_events: List[Tuple[int, VMError]] = []

    def handle_stdout(self, pid: int, data: bytes) -> None:
        self.stdout_events.append((pid, data))

    def handle_error(self, pid: int, err: VMError) -> None:
        self.error_events.append((pid, err))


####################################################################
# Tests

class TestHostedVM_IO(unittest.TestCase):
    def setUp(self) -> None:
        self.host = FakeHost()
        self.vm = HostedVM(self.host, pid=1)

    def test_write_and_print_emit_stdout_events(self) -> None:
        self.vm.run_source(".|> ( (.write hi) (.u 42) (.u-print) )")
        self.assertEqual(self.host.stdout_events, [
            (1, b"hi"),
            (1, b"42\n"),
        ])

    def test_empty_write_emits_nothing(self) -> None:
        self.vm.run_source(".|> ( (.empty-bytes) (.write) )")
        self.assertEqual(self.host.stdout_events, [])

    def test_out_argument_is_ignored_for_routing(self) -> None:
        buf = io.BytesIO()
        self.vm.run_source(".write x", out=buf)
        self.assertEqual(self.host.stdout_events, [(1, b"x")])
        self.assertEqual(buf.getvalue(), b"")


class TestHostedVM_Errors(unittest.TestCase):
    def setUp(self) -> None:
        self.host = FakeHost()
        self.vm = HostedVM(self.host, pid=7)

    def test_error_is_reported_and_kills_session(self) -> None:
        with self.assertRaises(DomainError):
            self.vm.run_source(".|> ( (.u 1) (.u 2) (.u-) )")
        self.assertFalse(self.vm.alive)
        self.assertEqual(self.vm.exit_reason, "DomainError")
        (pid, err), = self.host.error_events
        self.assertEqual(pid, 7)
        self.assertIsInstance(err, DomainError)

    def test_dead_session_refuses_runs(self) -> None:
        with self.assertRaises(UserError):
            self.vm.run_source(".error stop")
        with self.assertRaises(SessionDeadError):
            self.vm.run_source(".write again")
        self.assertEqual(self.host.stdout_events, [])

    def test_parse_error_is_fatal_too(self) -> None:
        with self.assertRaises(ParseError):
            self.vm.run_source(".|> ( (.write a)")
        self.assertFalse(self.vm.alive)

    def test_state_persists_between_runs(self) -> None:
        self.vm.run_source(".define two (.u 2)")
        self.vm.run_source("two")
        self.vm.run_source(".|> ( (two) (.u+) (.u-print) )")
        self.assertEqual(self.host.stdout_events, [(7, b"4\n")])

    def test_stop(self) -> None:
        self.vm.stop()
        self.assertFalse(self.vm.alive)
        self.assertEqual(self.vm.exit_reason, "killed")


def test_all() -> None:
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    runner.run(suite)

if __name__ == "__main__":
    test_all()
