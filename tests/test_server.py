"""Tests for the MCP tool functions, driven over an in-memory channel."""

from __future__ import annotations

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from cmdmessenger.config import MessengerConfig
from cmdmessenger.transport.memory import MemoryChannel
from cmdmessenger.utils.crc import CrcPolynomial


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_instance.prompt.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch.dict(sys.modules, {}):
        with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
            # Remove cached server module so it re-imports with our mock
            sys.modules.pop("cmdmessenger.server", None)
            import cmdmessenger.server as server_mod

    return server_mod


def _bound_server(config: MessengerConfig | None = None):
    server = _get_server_module()
    channel = MemoryChannel()
    server.bind(channel, config)
    return server, channel


def test_send_command_text_args():
    """Text arguments are escaped on the wire."""
    server, channel = _bound_server()
    result = server.send_command(5, ["a,b", "c"])
    assert result == {"sent": True, "cmd_id": 5}
    assert channel.written == b"5,a/,b,c;"


def test_send_command_binary_args():
    """Binary arguments follow the text ones as raw bytes."""
    server, channel = _bound_server()
    server.send_command(5, ["x"], [{"type": "int16", "value": 1}])
    assert channel.written == b"5,x,\x01\x00;"


def test_send_command_rejects_bad_binary_arg():
    """Invalid binary arguments are reported before anything is sent."""
    server, channel = _bound_server()
    assert "error" in server.send_command(5, binary_args=[{"type": "int24", "value": 1}])
    assert "error" in server.send_command(5, binary_args=[{"type": "uint8", "value": 999}])
    assert "error" in server.send_command(5, binary_args=[{"value": 1}])
    assert channel.written == b""


def test_send_command_with_ack():
    """The acknowledgment's arguments are returned."""
    server, channel = _bound_server()
    channel.inject(b"1,done;")
    result = server.send_command(5, require_ack=True, ack_id=1, timeout_ms=100)
    assert result["acknowledged"] is True
    assert result["ack_arguments"] == ["done"]


def test_send_command_ack_timeout():
    """A missing acknowledgment is reported."""
    server, _ = _bound_server()
    result = server.send_command(5, require_ack=True, timeout_ms=0)
    assert result["acknowledged"] is False
    assert "error" in result


def test_receive_commands():
    """Incoming commands are collected with their text arguments."""
    server, channel = _bound_server()
    channel.inject(b"3,x,y;4;")
    result = server.receive_commands()
    assert result == {
        "messages": [
            {"command_id": 3, "arguments": ["x", "y"]},
            {"command_id": 4, "arguments": []},
        ],
        "pending": 0,
    }


def test_receive_commands_limit():
    """max_messages caps the batch and the rest stays pending."""
    server, channel = _bound_server()
    channel.inject(b"1;2;3;")
    result = server.receive_commands(max_messages=2)
    assert [m["command_id"] for m in result["messages"]] == [1, 2]
    assert result["pending"] == 1


def test_stats_report_integrity_failures():
    """Corrupted input shows up in the statistics."""
    server, channel = _bound_server(MessengerConfig(crc=CrcPolynomial.CCITT))
    channel.inject(b"3,x;")
    server.receive_commands()
    stats = server.get_stats()
    assert stats["integrity_failures"] == 1
    assert stats["last_error"] == "integrity_failure"


def test_tools_require_connection():
    """Messaging tools fail cleanly when not connected."""
    server = _get_server_module()
    server.disconnect()
    with pytest.raises(RuntimeError):
        server.receive_commands()


def test_connect_rejects_unknown_crc():
    """Unknown polynomial names are reported without opening the port."""
    server = _get_server_module()
    server.disconnect()
    with patch.object(server, "SerialChannel") as serial_channel:
        result = server.connect("/dev/null", crc="crc99")
    assert "error" in result
    serial_channel.assert_not_called()


def test_connect_rejects_bad_separators():
    """Colliding separators are reported as an error."""
    server = _get_server_module()
    server.disconnect()
    result = server.connect("/dev/null", field_separator=";")
    assert "error" in result


def test_connect_opens_serial_channel():
    """connect() opens the port and reports the configuration."""
    server = _get_server_module()
    server.disconnect()
    with patch.object(server, "SerialChannel") as serial_channel:
        result = server.connect("/dev/ttyACM0", 9600, crc="kermit")
    serial_channel.assert_called_once_with("/dev/ttyACM0", 9600)
    serial_channel.return_value.open.assert_called_once()
    assert result["connected"] is True
    assert result["config"]["crc"] == "KERMIT"

    again = server.connect("/dev/ttyACM0")
    assert again["message"] == "Already connected"


def test_resources():
    """Resources describe the connection and configuration."""
    server, _ = _bound_server()
    assert json.loads(server.resource_config())["field_separator"] == ","
    status = json.loads(server.resource_connection_status())
    assert status["connected"] is True


def test_send_command_reports_failed_end():
    """A command that could not be finished is not reported as sent."""
    server, _ = _bound_server()
    with patch.object(server._messenger, "send_cmd_end", return_value=False):
        result = server.send_command(5, ["x"])
    assert result == {"sent": False, "cmd_id": 5}


def test_send_command_refused_while_composing():
    """A command already being composed blocks a new one."""
    server, channel = _bound_server()
    server._messenger.send_cmd_start(9)
    result = server.send_command(5, ["x"])
    assert result["sent"] is False
    assert "error" in result
    assert channel.written == b"9"
