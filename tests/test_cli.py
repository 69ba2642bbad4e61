"""Tests for the command-line entry point and its config wiring."""

import pytest

from entropy_protocol import __main__ as cli


@pytest.fixture
def captured(monkeypatch):
    """Replace every runner with one that records the config it got."""
    calls = []

    def fake_broker(config, args):
        calls.append(("broker", config, args))
        return 0

    async def fake_host(config, args):
        calls.append(("host", config, args))
        return 0

    async def fake_join(config, args):
        calls.append(("join", config, args))
        return 2

    monkeypatch.setattr(cli, "run_broker", fake_broker)
    monkeypatch.setattr(cli, "run_host", fake_host)
    monkeypatch.setattr(cli, "run_join", fake_join)
    return calls


class TestParser:
    """Test argument parsing."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_host_options(self):
        args = cli.build_parser().parse_args(["host", "--bots", "2", "--start", "--code", "QX7R"])

        assert args.command == "host"
        assert args.bots == 2
        assert args.start is True
        assert args.code == "QX7R"
        assert args.name == "HOST"

    def test_join_defaults(self):
        args = cli.build_parser().parse_args(["join", "abcd"])

        assert args.code == "abcd"
        assert args.name == "AGENT"
        assert args.auto is False

    def test_demo_options(self):
        args = cli.build_parser().parse_args(["demo", "--speed", "8", "--seed", "42", "--drop-rate", "0.3"])

        assert args.speed == 8.0
        assert args.seed == 42
        assert args.drop_rate == 0.3


class TestMain:
    """Test dispatch and config layering through main()."""

    def test_broker_flags_override(self, captured):
        assert cli.main(["broker", "--host", "127.0.0.1", "--port", "9000"]) == 0

        command, config, _ = captured[0]
        assert command == "broker"
        assert config.broker_host == "127.0.0.1"
        assert config.broker_port == 9000

    def test_file_then_env_then_flags(self, captured, tmp_path, monkeypatch):
        path = tmp_path / "entropy.yaml"
        path.write_text(
            "min_players: 2\n"
            "broker_url: ws://file:1\n"
            "request_timeout: 9\n"
        )
        monkeypatch.setenv("ENTROPY_REQUEST_TIMEOUT", "3")

        cli.main(["--config", str(path), "--broker-url", "ws://flag:2", "host"])

        _, config, _ = captured[0]
        assert config.min_players == 2
        assert config.request_timeout == 3.0
        assert config.broker_url == "ws://flag:2"

    def test_async_runner_exit_code(self, captured):
        assert cli.main(["join", "ABCD", "--name", "BOB"]) == 2

        command, _, args = captured[0]
        assert command == "join"
        assert args.name == "BOB"

    def test_keyboard_interrupt(self, monkeypatch):
        async def interrupted(config, args):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli, "run_host", interrupted)
        assert cli.main(["host"]) == 130


class TestScaledClock:
    """Test the demo's accelerated clock."""

    def test_speed(self, monkeypatch):
        now = [100.0]
        monkeypatch.setattr(cli.time, "time", lambda: now[0])

        clock = cli.scaled_clock(4.0)
        assert clock() == 100.0

        now[0] = 101.5
        assert clock() == 106.0
