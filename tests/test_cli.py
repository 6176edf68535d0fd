import json
import pytest
from unittest.mock import patch
from conftest import FakeRancherClient, service_doc
from rancher_upgrader.cli import main, build_parser, build_request


@pytest.fixture(autouse=True)
def _no_rancher_env(monkeypatch):
    for name in ("RANCHER_URL", "RANCHER_USER", "RANCHER_PASS"):
        monkeypatch.delenv(name, raising=False)


def _run(argv):
    with patch('sys.argv', ['rancher-upgrader'] + argv):
        main()


class TestCLIArgumentParsing:
    """Argument parsing and request construction."""

    def test_help_displays_correctly(self):
        with pytest.raises(SystemExit) as exc_info:
            _run(['--help'])
        assert exc_info.value.code == 0

    def test_execute_help_displays_correctly(self):
        with pytest.raises(SystemExit) as exc_info:
            _run(['execute', '--help'])
        assert exc_info.value.code == 0

    def test_missing_command_shows_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _run([])
        assert exc_info.value.code == 0
        assert "execute" in capsys.readouterr().out

    def test_non_integer_max_wait_exits_1(self):
        with pytest.raises(SystemExit) as exc_info:
            _run(['execute', 'upgrade', '-r', 'http://r', '-m', 'ten'])
        assert exc_info.value.code == 1

    def test_missing_action_exits_1(self):
        with pytest.raises(SystemExit) as exc_info:
            _run(['execute', '-r', 'http://r'])
        assert exc_info.value.code == 1

    def test_invalid_log_level_fails(self):
        with pytest.raises(SystemExit) as exc_info:
            _run(['--log-level', 'LOUD', 'execute', 'upgrade', '-r', 'http://r'])
        assert exc_info.value.code == 1

    def test_build_request_maps_options(self):
        args = build_parser().parse_args([
            'execute', 'upgrade', '-r', 'http://a|http://b', '-u', 'key', '-p', 'secret',
            '-i', 'httpd', '-t', '2.4', '-f', '-k', '-w', '-e', 'A=1', '-e', 'B=2', '-m', '3',
        ])
        request = build_request(args)

        assert request.action == 'upgrade'
        assert request.endpoints() == ['http://a', 'http://b']
        assert request.auth == ('key', 'secret')
        assert request.new_image == 'httpd' and request.new_tag == '2.4'
        assert request.force_finish and request.update_environment and request.wait
        assert request.environment_overrides == ('A=1', 'B=2')
        assert request.max_wait_seconds == 180

    def test_defaults_from_environment(self, monkeypatch):
        monkeypatch.setenv('RANCHER_URL', 'http://from-env')
        monkeypatch.setenv('RANCHER_USER', 'envkey')
        request = build_request(build_parser().parse_args(['execute', 'rollback']))

        assert request.target_endpoint == 'http://from-env'
        assert request.user == 'envkey'
        assert request.max_wait_seconds == 600


class TestCLIExecution:

    def test_missing_url_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _run(['execute', 'upgrade'])
        assert exc_info.value.code == 1
        assert "'url' is required" in capsys.readouterr().out

    def test_delimiter_only_url_exits_1(self, capsys):
        with patch('rancher_upgrader.cli.RancherClient') as client_cls:
            with pytest.raises(SystemExit) as exc_info:
                _run(['execute', 'rollback', '-r', ' | '])
        assert exc_info.value.code == 1
        assert "'url' is required" in capsys.readouterr().out
        client_cls.assert_not_called()

    def test_invalid_action_exits_1_without_client(self):
        with patch('rancher_upgrader.cli.RancherClient') as client_cls:
            with pytest.raises(SystemExit) as exc_info:
                _run(['execute', 'restart', '-r', 'http://r'])
        assert exc_info.value.code == 1
        client_cls.assert_not_called()

    def test_successful_run_prints_result(self, capsys):
        fake = FakeRancherClient({'http://r': [service_doc('active')]})
        fake.close = lambda: None
        with patch('rancher_upgrader.cli.RancherClient', return_value=fake):
            _run(['execute', 'upgrade', '-r', 'http://r', '-t', '1.21'])

        output = json.loads(capsys.readouterr().out)
        assert output['success'] is True
        assert output['results'][0]['endpoint'] == 'http://r'
        assert fake.actions() == ['upgrade']

    def test_failed_target_exits_1(self, capsys):
        fake = FakeRancherClient(fail_urls=['http://b'])
        fake.close = lambda: None
        with patch('rancher_upgrader.cli.RancherClient', return_value=fake):
            with pytest.raises(SystemExit) as exc_info:
                _run(['execute', 'rollback', '-r', 'http://a|http://b'])

        assert exc_info.value.code == 1
        output = json.loads(capsys.readouterr().out)
        assert output['success'] is False
        assert fake.actions('http://a') == ['rollback']
