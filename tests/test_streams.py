import pytest

import rhkb_streams as streams


@pytest.mark.parametrize("stream, url", [
    ("c9s", "https://gitlab.com/redhat/centos-stream/src/kernel/centos-stream-9.git"),
    ("c10s", "https://gitlab.com/redhat/centos-stream/src/kernel/centos-stream-10.git"),
    ("rhel9", "git@gitlab.com:redhat/rhel/src/kernel/rhel-9.git"),
    ("rhel9z", "git@gitlab.com:redhat/rhel/src/kernel/rhel-9.git"),
    ("rhel10", "git@gitlab.com:redhat/rhel/src/kernel/rhel-10.git"),
    ("rhel10z", "git@gitlab.com:redhat/rhel/src/kernel/rhel-10.git"),
])
def test_clone_url(stream, url):
    assert streams.clone_url(stream) == url


def test_clone_url_fork():
    assert streams.clone_url("c10s", "jdoe") == "git@gitlab.com:jdoe/centos-stream-10.git"
    assert streams.clone_url("rhel9", "team/kernel") == "git@gitlab.com:team/kernel/rhel-9.git"


def test_zstream_branches():
    assert streams.STREAMS["rhel9z"]["kind"] == "Z"
    assert streams.STREAMS["rhel9z"]["branch"] == "9.6"
    assert streams.STREAMS["rhel9"]["kind"] == "Y"
    assert streams.STREAMS["rhel9"]["branch"] == "main"


@pytest.mark.parametrize("stream, arch, rt, debug, name", [
    ("c9s", "x86_64", False, False, "kernel-5.14.0-x86_64.config"),
    ("c9s", "x86_64", True, False, "kernel-5.14.0-x86_64-rt.config"),
    ("rhel9z", "x86_64", True, True, "kernel-5.14.0-x86_64-rt-debug.config"),
    ("c10s", "aarch64", False, True, "kernel-6.12.0-aarch64-debug.config"),
    ("rhel10", "s390x", False, False, "kernel-6.12.0-s390x.config"),
    ("rhel10z", "ppc64le", False, False, "kernel-6.12.0-ppc64le.config"),
])
def test_config_name(stream, arch, rt, debug, name):
    assert streams.config_name(stream, arch, rt, debug) == name


def test_backport_remotes_centos():
    remotes = streams.backport_remotes("c9s")
    assert remotes == streams.UPSTREAM_REMOTES
    assert "centos" not in remotes


def test_backport_remotes_rhel():
    remotes = streams.backport_remotes("rhel10z")
    assert remotes["linus"].endswith("torvalds/linux.git")
    assert remotes["stable"].endswith("stable/linux.git")
    assert remotes["centos"] == "https://gitlab.com/redhat/centos-stream/src/kernel/centos-stream-10.git"
    # The shared table is left untouched
    assert "centos" not in streams.UPSTREAM_REMOTES


@pytest.mark.parametrize("arch, prefix, image", [
    ("x86_64", "x86_64-linux-gnu-", "arch/x86/boot/bzImage"),
    ("aarch64", "aarch64-linux-gnu-", "arch/arm64/boot/Image.gz"),
    ("ppc64le", "powerpc64le-linux-gnu-", "vmlinux"),
    ("s390x", "s390x-linux-gnu-", "arch/s390/boot/bzImage"),
])
def test_arch_tables(arch, prefix, image):
    assert streams.cross_compile(arch, "riscv64") == prefix
    assert streams.cross_compile(arch, arch) == ""
    assert streams.image_path(arch) == image


def test_unknown_stream():
    with pytest.raises(SystemExit) as exit_info:
        streams.clone_url("c8s")
    assert "Invalid stream" in str(exit_info.value.code)


def test_unknown_arch():
    with pytest.raises(SystemExit) as exit_info:
        streams.config_name("c9s", "riscv64")
    assert "Invalid arch" in str(exit_info.value.code)


@pytest.mark.parametrize("override, args", [
    ("KASAN=y", ["--enable", "KASAN"]),
    ("CONFIG_DEBUG_INFO=n", ["--disable", "DEBUG_INFO"]),
    ("NFS_FS=m", ["--module", "NFS_FS"]),
    ("NR_CPUS=64", ["--set-val", "NR_CPUS", "64"]),
    ("PHYSICAL_START=0x1000000", ["--set-val", "PHYSICAL_START", "0x1000000"]),
    ("LOCALVERSION=-test", ["--set-str", "LOCALVERSION", "-test"]),
    ('DEFAULT_HOSTNAME="devbox"', ["--set-str", "DEFAULT_HOSTNAME", "devbox"]),
])
def test_translate_override(override, args):
    assert streams.translate_override(override) == args


@pytest.mark.parametrize("override", ["KASAN", "=y"])
def test_translate_override_invalid(override):
    with pytest.raises(SystemExit):
        streams.translate_override(override)
