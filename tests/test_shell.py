import re

import pytest

from descartes import DescartesConfig, UnauthorizedCallerError
from descartes.shell import execute_command, make_environment, parse_args, parse_drives


@pytest.fixture
def env():
    return make_environment(DescartesConfig())


def run(env, capsys, line: str) -> str:
    execute_command(env, line)
    return capsys.readouterr().out


def test_parse_args():
    assert parse_args(["item=0", "caller=bob", "10"]) == {"item": "0", "caller": "bob", "@0": "10"}
    assert parse_args(["drives=[{\"a\": 1}]"]) == {"drives": "[{\"a\": 1}]"}


def test_parse_drives():
    [d1, d2] = parse_drives('[{"position": "0x100000", "log2_size": 5, "value": "0x01"}, '
                            '{"position": 4096, "log2_size": 3, "provider": "carol", "needs_provider": true, "needs_logger": true}]')

    assert d1.position == 0x100000 and d1.direct_value == b"\x00" * 31 + b"\x01"
    assert not d1.needs_provider
    assert d2.position == 0x1000 and d2.provider == "carol"
    assert d2.needs_provider and d2.needs_logger


def test_shell_session(env, capsys):
    assert env.li is env.manager.li

    out = run(env, capsys, "store data=0x0102030405060708")
    root = re.search(r"root=(0x[0-9a-f]{64}) log2_size=3", out).group(1)

    drives = '[{"position": "0x1000", "log2_size": 3, "provider": "carol", "needs_provider": true, "needs_logger": true}]'
    assert "state WaitingProviders" in run(env, capsys, f"instantiate claimer=alice challenger=bob drives='{drives}'")
    assert "WaitingClaim" in run(env, capsys, f"claim_logger item=0 root={root} caller=carol")
    assert "Claimed final hash" in run(env, capsys, "submit item=0 output=0x2a")
    assert "started" in run(env, capsys, "challenge item=0")

    run(env, capsys, "verdict item=0 winner=claimer")
    assert "ClaimerWon" in run(env, capsys, "win item=0")

    out = run(env, capsys, "result item=0")
    assert "ready=True" in out and "blame='bob'" in out

    out = run(env, capsys, "events")
    assert len(out.strip().splitlines()) == 4


def test_shell_deadline(env, capsys):
    run(env, capsys, "instantiate claimer=alice challenger=bob")

    assert "Time is now 7241" in run(env, capsys, "advance 7241")
    assert "ClaimerMissedDeadline" in run(env, capsys, "abort item=0")


def test_shell_errors(env, capsys):
    assert run(env, capsys, "# just a comment") == ""
    assert run(env, capsys, "") == ""
    assert "Invalid action" in run(env, capsys, "dance")

    run(env, capsys, "instantiate claimer=alice challenger=bob")
    run(env, capsys, "submit item=0 output=0x01")

    with pytest.raises(UnauthorizedCallerError):
        execute_command(env, "confirm item=0 caller=carol")
    with pytest.raises(ValueError, match="Invalid item"):
        execute_command(env, "state item=1")
