"""Shared fixtures: an in-memory Junos device reachable through a fake link."""
import asyncio
import re
from typing import Optional
from xml.sax.saxutils import unescape

import pytest

from junos_reconcile.devices.base import DeviceConfig, DeviceLink, RpcError, RpcReply

SYSTEM_INFORMATION = """<system-information>
<hardware-model>srx345</hardware-model>
<os-name>junos</os-name>
<os-version>21.4R3-S1</os-version>
<serial-number>CZ1234AB0001</serial-number>
<host-name>fake-srx</host-name>
</system-information>"""

_TAG_TEXT = r"<{tag}>(.*?)</{tag}>"


def _between(rpc: str, tag: str) -> str:
    match = re.search(_TAG_TEXT.format(tag=tag), rpc, re.S)
    return unescape(match.group(1)) if match else ""


class FakeJunosDevice:
    """Candidate/running configuration store with one exclusive lock.

    Statements are stored without the leading ``set``. The lock survives
    the session that took it, so a leaked lock shows up in the next test
    step.
    """

    def __init__(self, system_information: str = SYSTEM_INFORMATION):
        self.system_information = system_information
        self.running: list[str] = []
        self.candidate: list[str] = []
        self.lock_holder: Optional[int] = None
        self.rpcs: list[tuple[int, str]] = []
        self.commit_log: list[str] = []
        self.confirmed_timeouts: list[int] = []
        self.confirmations = 0
        # Failure injection
        self.fail_connects = 0
        self.commit_errors: list[str] = []
        self.reject_tokens: set[str] = set()
        self.fail_commands: set[str] = set()
        self.block_on: Optional[str] = None
        self.blocked = asyncio.Event()
        self.release = asyncio.Event()
        self._next_session = 100

    def new_session_id(self) -> int:
        self._next_session += 1
        return self._next_session

    def load_running(self, statements: list[str]) -> None:
        self.running = list(statements)
        self.candidate = list(statements)

    def rpc_names(self) -> list[str]:
        names = []
        for _, rpc in self.rpcs:
            match = re.match(r"<([a-z-]+)", rpc)
            names.append(match.group(1) if match else rpc)
        return names

    def handle(self, session_id: int, rpc: str) -> RpcReply:
        self.rpcs.append((session_id, rpc))

        if rpc.startswith("<get-system-information"):
            return RpcReply(data=self.system_information)
        if rpc.startswith("<lock>"):
            if self.lock_holder not in (None, session_id):
                return self._error(
                    f"configuration database locked by: session {self.lock_holder}"
                )
            self.lock_holder = session_id
            return RpcReply()
        if rpc.startswith("<unlock>"):
            if self.lock_holder != session_id:
                return self._error("configuration database not locked by this session")
            self.lock_holder = None
            return RpcReply()
        if rpc.startswith("<delete-config>"):
            self.candidate = list(self.running)
            return RpcReply()
        if rpc.startswith("<load-configuration"):
            return self._load(session_id, _between(rpc, "configuration-set"))
        if rpc.startswith("<commit-configuration>"):
            return self._commit(session_id, rpc)
        if rpc.startswith("<command"):
            match = re.match(r"<command[^>]*>(.*?)</command>", rpc, re.S)
            return self._command(unescape(match.group(1)) if match else "")
        if rpc.startswith("<close-session"):
            return RpcReply()
        return self._error(f"unknown rpc {rpc}")

    @staticmethod
    def _error(message: str, severity: str = "error", bad_element: str = "") -> RpcReply:
        return RpcReply(errors=[RpcError(severity=severity, message=message, bad_element=bad_element)])

    def _load(self, session_id: int, text: str) -> RpcReply:
        if self.lock_holder != session_id:
            return self._error("configuration database modified")
        lines = text.split("\n")
        for line in lines:
            for token in line.split():
                if token in self.reject_tokens:
                    return self._error("syntax error", bad_element=token)

        warnings = []
        for line in lines:
            line = line.strip()
            if line.startswith("set "):
                statement = line[len("set "):]
                if statement not in self.candidate:
                    self.candidate.append(statement)
            elif line.startswith("delete "):
                path = line[len("delete "):]
                kept = [s for s in self.candidate if s != path and not s.startswith(path + " ")]
                if len(kept) == len(self.candidate):
                    warnings.append(RpcError(severity="warning", message="statement not found"))
                self.candidate = kept
        return RpcReply(errors=warnings)

    def _commit(self, session_id: int, rpc: str) -> RpcReply:
        if "<check/>" in rpc:
            self.confirmations += 1
            return RpcReply()
        if self.lock_holder not in (None, session_id):
            return self._error("configuration database locked by another session")
        if self.commit_errors:
            return self._error(self.commit_errors.pop(0))
        if "<confirmed/>" in rpc:
            self.confirmed_timeouts.append(int(_between(rpc, "confirm-timeout")))
        self.commit_log.append(_between(rpc, "log"))
        self.running = list(self.candidate)
        return RpcReply()

    def _command(self, query: str) -> RpcReply:
        query = query.strip()
        if query in self.fail_commands:
            return self._error(f"command failed: {query}")
        match = re.fullmatch(r"show configuration (.+?) \| display set( relative)?", query)
        if not match:
            return self._error(f"syntax error: {query}")
        path, relative = match.group(1), bool(match.group(2))
        lines = []
        for statement in self.running:
            statement = statement.strip()
            if statement == path:
                if not relative:
                    lines.append(f"set {statement}")
            elif statement.startswith(path + " "):
                rest = statement[len(path) + 1:]
                lines.append(f"set {rest}" if relative else f"set {statement}")
        body = "\n".join(lines)
        return RpcReply(
            data=f"<configuration-output>\n{body}\n</configuration-output>"
        )


class FakeLink(DeviceLink):
    """DeviceLink talking to a FakeJunosDevice."""

    def __init__(self, config: DeviceConfig, device: FakeJunosDevice):
        super().__init__(config)
        self.device = device
        self.session_id: Optional[int] = None
        self.closed = False

    async def open(self) -> None:
        if self.device.fail_connects > 0:
            self.device.fail_connects -= 1
            raise ConnectionRefusedError(f"connection refused by {self.host}")
        self.session_id = self.device.new_session_id()

    async def exec(self, rpc: str) -> RpcReply:
        if self.closed or self.session_id is None:
            raise EOFError("session closed")
        if self.device.block_on and rpc.startswith(self.device.block_on):
            self.device.blocked.set()
            await self.device.release.wait()
        return self.device.handle(self.session_id, rpc)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def device():
    return FakeJunosDevice()


@pytest.fixture
def device_config():
    return DeviceConfig(host="192.0.2.10", password="secret", retry_delay=0)


@pytest.fixture
def link_factory(device):
    def factory(config):
        return FakeLink(config, device)
    return factory
