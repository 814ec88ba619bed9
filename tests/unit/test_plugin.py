from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from stabilityguard.core.history import BoundedHistory
from stabilityguard.core.models import Outcome, StabilityConfig, TestOutcome
from stabilityguard.plugin import StabilityGuardPlugin, pytest_addoption, pytest_configure


def run_makereport(plugin, nodeid, when, outcome):
    item = Mock()
    item.nodeid = nodeid
    report = Mock()
    report.when = when
    report.outcome = outcome
    report.skipped = outcome == "skipped"
    report.failed = outcome == "failed"
    hook_outcome = Mock()
    hook_outcome.get_result.return_value = report

    gen = plugin.pytest_runtest_makereport(item, Mock())
    next(gen)
    with pytest.raises(StopIteration):
        gen.send(hook_outcome)


def test_pytest_addoption_registers_options():
    parser = Mock()
    group = Mock()
    parser.getgroup.return_value = group

    pytest_addoption(parser)

    parser.getgroup.assert_called_once_with("stabilityguard")
    options = [call.args[0] for call in group.addoption.call_args_list]
    assert "--stability" in options
    assert "--stability-db" in options
    assert "--stability-max-history" in options
    assert "--stability-build" in options


@patch("stabilityguard.plugin.StabilityGuardPlugin")
@patch("stabilityguard.plugin.SQLiteStorage")
def test_pytest_configure_enabled_registers_plugin(mock_storage_cls, mock_plugin_cls):
    config = Mock()
    config.pluginmanager = Mock()
    options = {
        "--stability": True,
        "--stability-db": "tmp/stability.db",
        "--stability-max-history": 12,
        "--stability-build": 42,
    }
    config.getoption.side_effect = options.__getitem__

    storage = Mock()
    mock_storage_cls.return_value = storage
    plugin = Mock()
    mock_plugin_cls.return_value = plugin

    pytest_configure(config)

    stability_config = mock_storage_cls.call_args.args[0]
    assert isinstance(stability_config, StabilityConfig)
    assert stability_config.max_history_length == 12
    assert stability_config.db_path == Path("tmp/stability.db")
    mock_plugin_cls.assert_called_once_with(storage, stability_config, 42)
    config.pluginmanager.register.assert_called_once_with(plugin, "stabilityguard-runtime")


@patch("stabilityguard.plugin.SQLiteStorage")
def test_pytest_configure_disabled_does_nothing(mock_storage_cls):
    config = Mock()
    config.pluginmanager = Mock()
    config.getoption.return_value = False

    pytest_configure(config)

    config.pluginmanager.register.assert_not_called()
    mock_storage_cls.assert_not_called()


def test_pytest_configure_rejects_invalid_history_length():
    config = Mock()
    options = {
        "--stability": True,
        "--stability-db": "tmp/stability.db",
        "--stability-max-history": 0,
        "--stability-build": None,
    }
    config.getoption.side_effect = options.__getitem__

    with pytest.raises(ValueError):
        pytest_configure(config)


def test_makereport_records_call_outcomes():
    plugin = StabilityGuardPlugin(Mock(), StabilityConfig())

    run_makereport(plugin, "tests/test_a.py::test_pass", "call", "passed")
    run_makereport(plugin, "tests/test_a.py::test_fail", "call", "failed")
    run_makereport(plugin, "tests/test_a.py::test_skip", "call", "skipped")
    run_makereport(plugin, "tests/test_a.py::test_odd", "call", "rerun")

    assert plugin.outcomes == {
        "tests/test_a.py::test_pass": TestOutcome.PASSED,
        "tests/test_a.py::test_fail": TestOutcome.FAILED,
        "tests/test_a.py::test_skip": TestOutcome.SKIPPED,
        "tests/test_a.py::test_odd": TestOutcome.ERROR,
    }


def test_makereport_records_setup_skip_and_errors():
    plugin = StabilityGuardPlugin(Mock(), StabilityConfig())

    run_makereport(plugin, "tests/test_a.py::test_marked_skip", "setup", "skipped")
    run_makereport(plugin, "tests/test_a.py::test_broken_fixture", "setup", "failed")
    run_makereport(plugin, "tests/test_a.py::test_teardown", "call", "passed")
    run_makereport(plugin, "tests/test_a.py::test_teardown", "teardown", "failed")
    run_makereport(plugin, "tests/test_a.py::test_clean", "setup", "passed")

    assert plugin.outcomes == {
        "tests/test_a.py::test_marked_skip": TestOutcome.SKIPPED,
        "tests/test_a.py::test_broken_fixture": TestOutcome.ERROR,
        "tests/test_a.py::test_teardown": TestOutcome.ERROR,
    }


@patch("stabilityguard.plugin.propagate_histories")
def test_sessionfinish_records_build_and_attaches_histories(mock_propagate):
    storage = Mock()
    storage.next_build_number.return_value = 8
    config = StabilityConfig(max_history_length=5)
    histories = {"tests/test_a.py::test_fail": Mock()}
    mock_propagate.return_value = histories

    plugin = StabilityGuardPlugin(storage, config)
    plugin.outcomes = {
        "tests/test_a.py::test_pass": TestOutcome.PASSED,
        "tests/test_a.py::test_fail": TestOutcome.FAILED,
    }

    plugin.pytest_sessionfinish(Mock(), 1)

    assert plugin.build_number == 8
    saved = storage.save_results.call_args.args[0]
    assert [r.test_id for r in saved] == [
        "tests/test_a.py::test_pass",
        "tests/test_a.py::test_fail",
        "tests/test_a.py",
    ]
    assert all(r.build_number == 8 for r in saved)
    mock_propagate.assert_called_once_with(storage, saved, 8, config)
    storage.attach_histories.assert_called_once_with(8, histories)
    assert plugin.histories == histories


@patch("stabilityguard.plugin.propagate_histories")
def test_sessionfinish_uses_configured_build_number(mock_propagate):
    storage = Mock()
    mock_propagate.return_value = {}

    plugin = StabilityGuardPlugin(storage, StabilityConfig(), build_number=100)
    plugin.outcomes = {"tests/test_a.py::test_pass": TestOutcome.PASSED}

    plugin.pytest_sessionfinish(Mock(), 0)

    storage.next_build_number.assert_not_called()
    storage.attach_histories.assert_called_once_with(100, {})


def test_sessionfinish_without_results_does_nothing():
    storage = Mock()
    plugin = StabilityGuardPlugin(storage, StabilityConfig())

    plugin.pytest_sessionfinish(Mock(), 5)

    storage.save_results.assert_not_called()
    storage.attach_histories.assert_not_called()


def test_terminal_summary_lists_unstable_tests():
    plugin = StabilityGuardPlugin(Mock(), StabilityConfig(), build_number=3)
    history = BoundedHistory(30)
    history.add_all(
        [
            Outcome(build_number=1, passed=True),
            Outcome(build_number=2, passed=False),
            Outcome(build_number=3, passed=True),
        ]
    )
    plugin.histories = {"tests/test_a.py::test_flaky": history}
    terminalreporter = Mock()

    plugin.pytest_terminal_summary(terminalreporter)

    terminalreporter.section.assert_called_once_with("StabilityGuard Summary")
    lines = [call.args[0] for call in terminalreporter.write_line.call_args_list]
    assert lines[0] == "Build 3: 1 test(s) with failures in their last 30 runs"
    assert any(
        "tests/test_a.py::test_flaky" in line and "Flakiness: 100%" in line
        for line in lines
    )


def test_terminal_summary_truncates_long_lists():
    plugin = StabilityGuardPlugin(Mock(), StabilityConfig(), build_number=3)
    plugin.histories = {}
    for i in range(12):
        history = BoundedHistory(30)
        history.add(Outcome(build_number=3, passed=False))
        plugin.histories[f"tests/test_a.py::test_{i}"] = history
    terminalreporter = Mock()

    plugin.pytest_terminal_summary(terminalreporter)

    lines = [call.args[0] for call in terminalreporter.write_line.call_args_list]
    assert "  ... and 2 more" in lines


def test_terminal_summary_silent_without_histories():
    plugin = StabilityGuardPlugin(Mock(), StabilityConfig())
    terminalreporter = Mock()

    plugin.pytest_terminal_summary(terminalreporter)

    terminalreporter.section.assert_not_called()
