import logging

import pytest

import rhkb_utils


def test_get_config():
    section = {"jobs": "8", "fork": ""}
    assert rhkb_utils.get_config(section, "jobs") == "8"
    assert rhkb_utils.get_config(section, "fork", False) == ""
    with pytest.raises(SystemExit) as exit_info:
        rhkb_utils.get_config(section, "fork")
    assert "export fork=" in str(exit_info.value.code)


def test_config_section(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert rhkb_utils.rhkb_config_section("kernel_builder") is None
    (tmp_path / ".rhkb").write_text("[kernel_builder]\njobs = 3\n", encoding="utf-8")
    assert rhkb_utils.rhkb_config_section("kernel_builder")["jobs"] == "3"
    assert rhkb_utils.rhkb_config_section("other") is None


def test_dry_run_prints_without_executing(no_subprocess, capsys):
    bash = rhkb_utils.BashCommands(dry_run=True)
    bash.set_make("arm64", "/src", "/build", 2, "aarch64-linux-gnu-")
    assert bash.make(["olddefconfig"])
    assert bash.git(["-C", "/src", "fetch", "linus"])
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "make -j2 -C /src O=/build ARCH=arm64 CROSS_COMPILE=aarch64-linux-gnu- olddefconfig",
        "git -C /src fetch linus",
    ]


def test_make_not_set():
    with pytest.raises(SystemExit):
        rhkb_utils.BashCommands().make(["all"])


def test_missing_tool():
    assert not rhkb_utils.BashCommands().tool_available("rhkb-tool-that-does-not-exist")


def test_run_log_streams_output(tmp_path, capsys):
    log_file = rhkb_utils.setup_log(str(tmp_path / "logs"))
    bash = rhkb_utils.BashCommands()
    assert bash.rhkb_run_log(["echo", "hello kernel"])
    assert not bash.rhkb_run_log(["false"])
    for handler in rhkb_utils.LOG.handlers:
        handler.flush()
    assert "hello kernel" in capsys.readouterr().out
    assert log_file.startswith(str(tmp_path / "logs" / "rhkb-"))
    with open(log_file, encoding="utf-8") as log_fd:
        log = log_fd.read()
    assert "$ echo hello kernel" in log
    assert "hello kernel" in log
    assert "exit status 1" in log


def test_die_logs_error(caplog):
    caplog.set_level(logging.ERROR, logger="rhkb")
    rhkb_utils.LOG.propagate = True
    try:
        with pytest.raises(SystemExit):
            rhkb_utils.die("Error! broken")
    finally:
        rhkb_utils.LOG.propagate = False
    assert "Error! broken" in caplog.text
