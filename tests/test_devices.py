"""Tests for device base classes and utilities."""
import pytest

from junos_reconcile.devices import create_session
from junos_reconcile.devices.base import (
    PLAIN_COMMIT,
    CommitDescriptor,
    DeviceConfig,
    RpcError,
    RpcReply,
    SystemInformation,
)
from ncclient import NCClientError
from ncclient.operations import RaiseMode
from ncclient.operations.errors import TimeoutExpiredError

from junos_reconcile.devices import netconf
from junos_reconcile.devices.netconf import NetconfLink, parse_rpc_reply
from junos_reconcile.exceptions import ConnectError, ParseError


class TestDeviceConfig:
    """Tests for DeviceConfig dataclass."""

    def test_defaults(self):
        """Default values are applied."""
        config = DeviceConfig(host="192.0.2.10")
        assert config.port == 830
        assert config.username == "netconf"
        assert config.password is None
        assert config.timeout == 60
        assert config.retries == 1
        assert config.file_permission == "644"
        assert config.commit_descriptor() == PLAIN_COMMIT

    def test_retries_clamped(self):
        assert DeviceConfig(host="a", retries=0).retries == 1
        assert DeviceConfig(host="a", retries=25).retries == 10

    def test_get_password_from_config(self):
        """Password from config takes precedence."""
        config = DeviceConfig(host="a", password="direct")
        assert config.get_password() == "direct"

    def test_get_password_from_env(self, monkeypatch):
        """Password falls back to the environment variable."""
        monkeypatch.setenv("LAB_JUNOS_PASSWORD", "from-env")
        config = DeviceConfig(host="a", password_env="LAB_JUNOS_PASSWORD")
        assert config.get_password() == "from-env"

    def test_get_password_missing(self, monkeypatch):
        monkeypatch.delenv("JUNOS_PASSWORD", raising=False)
        assert DeviceConfig(host="a").get_password() == ""

    def test_fake_flags_need_set_file(self):
        with pytest.raises(ValueError):
            DeviceConfig(host="a", fake_update_also=True)
        with pytest.raises(ValueError):
            DeviceConfig(host="a", fake_delete_also=True)
        config = DeviceConfig(host="a", set_file="/tmp/x.set", fake_delete_also=True)
        assert config.fake_delete_also

    def test_invalid_commit_options(self):
        with pytest.raises(ValueError):
            DeviceConfig(host="a", commit_confirmed=70000)
        with pytest.raises(ValueError):
            DeviceConfig(host="a", commit_confirmed=5, confirmed_wait_percent=100)


class TestFromEnv:
    """Tests for DeviceConfig.from_env."""

    def test_full_environment(self):
        environ = {
            "JUNOS_HOST": "192.0.2.10",
            "JUNOS_PORT": "22",
            "JUNOS_USERNAME": "automation",
            "JUNOS_PASSWORD": "secret",
            "JUNOS_KEYFILE": "~/.ssh/id_ed25519",
            "JUNOS_FAKECREATE_SETFILE": "/tmp/changes.set",
            "JUNOS_FAKEUPDATE_ALSO": "true",
            "JUNOS_FAKEDELETE_ALSO": "0",
            "JUNOS_FILE_PERMISSION": "0600",
        }
        config = DeviceConfig.from_env(environ)
        assert config.host == "192.0.2.10"
        assert config.port == 22
        assert config.username == "automation"
        assert config.get_password() == "secret"
        assert config.ssh_key_file == "~/.ssh/id_ed25519"
        assert config.set_file == "/tmp/changes.set"
        assert config.fake_update_also is True
        assert config.fake_delete_also is False
        assert config.file_permission == "0600"

    def test_overrides_win(self):
        config = DeviceConfig.from_env({"JUNOS_HOST": "a", "JUNOS_PORT": "22"}, port=830)
        assert config.port == 830

    def test_missing_host(self):
        with pytest.raises(ValueError):
            DeviceConfig.from_env({})


class TestCommitDescriptor:
    """Tests for commit descriptors."""

    def test_plain(self):
        assert not PLAIN_COMMIT.confirmed
        assert PLAIN_COMMIT.confirm_wait == 0.0

    def test_confirm_wait(self):
        descriptor = CommitDescriptor(confirmed_timeout=10)
        assert descriptor.confirmed
        assert descriptor.confirm_wait == 540.0

    def test_confirm_wait_percent(self):
        assert CommitDescriptor(confirmed_timeout=1, verify_wait_percent=0).confirm_wait == 0.0
        assert CommitDescriptor(confirmed_timeout=1, verify_wait_percent=99).confirm_wait == 59.4

    def test_timeout_range(self):
        CommitDescriptor(confirmed_timeout=1)
        CommitDescriptor(confirmed_timeout=65535)
        with pytest.raises(ValueError):
            CommitDescriptor(confirmed_timeout=0)
        with pytest.raises(ValueError):
            CommitDescriptor(confirmed_timeout=65536)

    def test_from_config(self):
        config = DeviceConfig(host="a", commit_confirmed=3, confirmed_wait_percent=50)
        assert config.commit_descriptor() == CommitDescriptor(
            confirmed_timeout=3, verify_wait_percent=50
        )


class TestSystemInformation:
    """Tests for the identity snapshot."""

    def test_from_xml(self):
        info = SystemInformation.from_xml(
            "<system-information>"
            "<hardware-model>mx204</hardware-model>"
            "<os-name>junos</os-name>"
            "<os-version>22.2R1</os-version>"
            "<serial-number>AB123</serial-number>"
            "<host-name>mx-core</host-name>"
            "</system-information>"
        )
        assert info.hardware_model == "mx204"
        assert info.os_version == "22.2R1"
        assert info.host_name == "mx-core"
        assert info.cluster_node is False

    def test_namespaced(self):
        info = SystemInformation.from_xml(
            '<system-information xmlns="http://xml.juniper.net/junos/22.2R1/junos">'
            "<host-name>ns-host</host-name><cluster-node/>"
            "</system-information>"
        )
        assert info.host_name == "ns-host"
        assert info.cluster_node is True

    def test_invalid(self):
        with pytest.raises(ParseError):
            SystemInformation.from_xml("not xml")


class TestRpcReply:
    """Tests for reply parsing and error classification."""

    def test_warnings_are_not_failures(self):
        reply = RpcReply(errors=[
            RpcError(severity="warning", message="statement not found"),
            RpcError(message="syntax error", bad_element="bogus"),
        ])
        assert not reply.ok
        assert [str(e) for e in reply.warnings] == ["statement not found"]
        assert [str(e) for e in reply.failures] == ["syntax error (bad element: bogus)"]

    def test_parse_ok(self):
        reply = parse_rpc_reply(
            '<rpc-reply xmlns="urn:ietf:params:xml:ns:netconf:base:1.0" message-id="3">'
            "<ok/></rpc-reply>"
        )
        assert reply.ok
        assert reply.errors == []

    def test_parse_errors(self):
        reply = parse_rpc_reply(
            '<rpc-reply xmlns="urn:ietf:params:xml:ns:netconf:base:1.0" message-id="4">'
            "<rpc-error><error-severity>error</error-severity>"
            "<error-path>[edit protocols]</error-path>"
            "<error-info><bad-element>bogus-knob</bad-element></error-info>"
            "<error-message>syntax error</error-message></rpc-error>"
            "<rpc-error><error-severity>warning</error-severity>"
            "<error-message>statement not found</error-message></rpc-error>"
            "</rpc-reply>"
        )
        assert len(reply.failures) == 1
        failure = reply.failures[0]
        assert failure.message == "syntax error"
        assert failure.bad_element == "bogus-knob"
        assert failure.path == "[edit protocols]"
        assert reply.warnings[0].message == "statement not found"

    def test_parse_data(self):
        reply = parse_rpc_reply(
            '<rpc-reply xmlns="urn:ietf:params:xml:ns:netconf:base:1.0" message-id="5">'
            "<configuration-output>\nset protocols lldp\n</configuration-output>"
            "</rpc-reply>"
        )
        assert reply.ok
        assert "set protocols lldp" in reply.data

    def test_parse_malformed(self):
        reply = parse_rpc_reply("<rpc-reply><unclosed>")
        assert not reply.ok


class TestCreateSession:
    """Tests for the session factory."""

    def test_unknown_transport(self):
        with pytest.raises(ValueError) as exc_info:
            create_session("x", {"host": "a", "transport": "telnet"})
        assert "Unknown transport" in str(exc_info.value)

    def test_netconf_default(self):
        session = create_session("x", {"host": "a"})
        assert session.device_id == "x"
        assert not session.is_connected


class StubReply:
    def __init__(self, data_xml):
        self.data_xml = data_xml


class StubManager:
    """Stands in for an ncclient manager."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.sent = []
        self.connected = True
        self.session_id = "4711"
        self.raise_mode = RaiseMode.ALL
        self.closed = False

    def rpc(self, element):
        self.sent.append(element)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return StubReply(reply)

    def close_session(self):
        self.closed = True
        self.connected = False


@pytest.fixture
def stub_connect(monkeypatch):
    calls = []
    stub = StubManager([])

    def connect(**kwargs):
        calls.append(kwargs)
        return stub

    monkeypatch.setattr(netconf.manager, "connect", connect)
    return stub, calls


class TestNetconfLink:
    """Tests for the ncclient-backed transport."""

    @pytest.mark.asyncio
    async def test_open_uses_junos_handler(self, stub_connect):
        stub, calls = stub_connect
        link = NetconfLink(DeviceConfig(host="192.0.2.10", password="pw", timeout=15))
        await link.open()

        params = calls[0]
        assert params["host"] == "192.0.2.10"
        assert params["port"] == 830
        assert params["device_params"] == {"name": "junos"}
        assert params["timeout"] == 15
        assert params["password"] == "pw"
        assert stub.raise_mode == RaiseMode.NONE
        assert link.session_id == "4711"

    @pytest.mark.asyncio
    async def test_exec_parses_reply(self, stub_connect):
        stub, _ = stub_connect
        stub.replies = [
            "<rpc-reply><rpc-error><error-severity>warning</error-severity>"
            "<error-message>statement not found</error-message></rpc-error>"
            "<output>uptime</output></rpc-reply>"
        ]
        link = NetconfLink(DeviceConfig(host="a"))
        await link.open()

        reply = await link.exec('<command format="text">show system uptime</command>')
        assert reply.ok
        assert reply.data == "<output>uptime</output>"
        assert [w.message for w in reply.warnings] == ["statement not found"]
        assert stub.sent[0].tag == "command"

    @pytest.mark.asyncio
    async def test_exec_timeout(self, stub_connect):
        stub, _ = stub_connect
        stub.replies = [TimeoutExpiredError("no reply")]
        link = NetconfLink(DeviceConfig(host="a"))
        await link.open()
        with pytest.raises(TimeoutError):
            await link.exec("<get-system-information/>")

    @pytest.mark.asyncio
    async def test_exec_not_open(self):
        with pytest.raises(ConnectionError):
            await NetconfLink(DeviceConfig(host="a")).exec("<close-session/>")

    @pytest.mark.asyncio
    async def test_connect_failure_is_retryable(self, monkeypatch):
        def connect(**kwargs):
            raise NCClientError("Could not open socket")

        monkeypatch.setattr(netconf.manager, "connect", connect)
        with pytest.raises(ConnectionError) as exc_info:
            await NetconfLink(DeviceConfig(host="a")).open()
        assert "Could not open socket" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_bad_inline_key(self, stub_connect):
        _, calls = stub_connect
        link = NetconfLink(DeviceConfig(host="a", ssh_key_pem="not a key"))
        with pytest.raises(ConnectError):
            await link.open()
        assert calls == []

    @pytest.mark.asyncio
    async def test_close_idempotent(self, stub_connect):
        stub, _ = stub_connect
        link = NetconfLink(DeviceConfig(host="a"))
        await link.open()
        await link.close()
        await link.close()
        assert stub.closed
        assert link.session_id is None
