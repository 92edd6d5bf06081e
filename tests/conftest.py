import pytest

import rhel_kernel_builder as kb
import rhkb_utils


@pytest.fixture
def kernel_env(tmp_path, monkeypatch):
    """ Home, kernel source and build folders exported like a user would """
    home = tmp_path / "home"
    home.mkdir()
    src = tmp_path / "src"
    src.mkdir()
    build = tmp_path / "build"
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("kernel_src", str(src))
    monkeypatch.setenv("kernel_build", str(build))
    return {"home": home, "src": src, "build": build}


@pytest.fixture
def no_subprocess(monkeypatch):
    """ Any external command makes the test fail """

    def _fail(*args, **kwargs):
        raise AssertionError(f"Unexpected command {args}")

    monkeypatch.setattr(rhkb_utils, "run", _fail)
    monkeypatch.setattr(rhkb_utils, "Popen", _fail)


@pytest.fixture
def builder():
    def _builder(*argv):
        return kb.KernelBuilder(kb.parse_arguments(list(argv)))

    return _builder
