import json

from typer.testing import CliRunner

from hangouts.cli import app
from hangouts.core.MessageTypes import ActiveClientState

from protocol_fakes import batch_frame, handshake_frame, make_state_update

runner = CliRunner()


def test_decode_lists_each_frame(tmp_path):
    capture = tmp_path / "frames.jsonl"
    capture.write_text("\n".join([
        json.dumps(["noop"]),
        json.dumps(handshake_frame("client-42")),
        json.dumps(batch_frame(make_state_update(12345, ActiveClientState.IS_ACTIVE))),
        "{broken",
    ]) + "\n")

    result = runner.invoke(app, ["decode", str(capture)])

    assert result.exit_code == 0
    assert "heartbeat" in result.output
    assert "client-42" in result.output
    assert "12345" in result.output
    assert "IS_ACTIVE" in result.output
    assert "error" in result.output


def test_decode_requires_existing_file(tmp_path):
    result = runner.invoke(app, ["decode", str(tmp_path / "missing.jsonl")])

    assert result.exit_code != 0
