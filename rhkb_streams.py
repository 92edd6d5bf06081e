""" Kernel streams and architectures known by the RHEL kernel builder.
    Static tables mapping a stream to its git repository and Kconfig file, and an
    architecture to its make ARCH, cross-compiler prefix and build artifacts.
"""
from rhkb_utils import die

GITLAB_HTTPS = "https://gitlab.com/redhat/{group}/src/kernel/{project}.git"
GITLAB_SSH = "git@gitlab.com:redhat/{group}/src/kernel/{project}.git"
FORK_SSH = "git@gitlab.com:{fork}/{project}.git"

STREAMS = {
    "c9s": {"kind": "Y", "group": "centos-stream", "project": "centos-stream-9",
            "branch": "main", "version": "5.14.0", "centos": None},
    "c10s": {"kind": "Y", "group": "centos-stream", "project": "centos-stream-10",
             "branch": "main", "version": "6.12.0", "centos": None},
    "rhel9": {"kind": "Y", "group": "rhel", "project": "rhel-9",
              "branch": "main", "version": "5.14.0", "centos": "c9s"},
    "rhel9z": {"kind": "Z", "group": "rhel", "project": "rhel-9",
               "branch": "9.6", "version": "5.14.0", "centos": "c9s"},
    "rhel10": {"kind": "Y", "group": "rhel", "project": "rhel-10",
               "branch": "main", "version": "6.12.0", "centos": "c10s"},
    "rhel10z": {"kind": "Z", "group": "rhel", "project": "rhel-10",
                "branch": "10.0", "version": "6.12.0", "centos": "c10s"},
}

ARCHES = {
    "x86_64": {"make_arch": "x86", "cross_compile": "x86_64-linux-gnu-",
               "image": "arch/x86/boot/bzImage", "rpm_arch": "x86_64"},
    "aarch64": {"make_arch": "arm64", "cross_compile": "aarch64-linux-gnu-",
                "image": "arch/arm64/boot/Image.gz", "rpm_arch": "aarch64"},
    "ppc64le": {"make_arch": "powerpc", "cross_compile": "powerpc64le-linux-gnu-",
                "image": "vmlinux", "rpm_arch": "ppc64le"},
    "s390x": {"make_arch": "s390", "cross_compile": "s390x-linux-gnu-",
              "image": "arch/s390/boot/bzImage", "rpm_arch": "s390x"},
}

RT_ARCHES = ("x86_64", "aarch64")

UPSTREAM_REMOTES = {
    "linus": "https://git.kernel.org/pub/scm/linux/kernel/git/torvalds/linux.git",
    "stable": "https://git.kernel.org/pub/scm/linux/kernel/git/stable/linux.git",
}

# scripts/config arguments applied on top of every stream config
CONFIG_OVERRIDES = [
    ["--disable", "DEBUG_INFO_BTF"],
    ["--set-str", "SYSTEM_TRUSTED_KEYS", ""],
    ["--set-str", "SYSTEM_REVOCATION_KEYS", ""],
    ["--disable", "MODULE_SIG_ALL"],
    ["--set-str", "LOCALVERSION", "-rhkb"],
]


def check_stream(stream):
    """ Exits if the stream is not supported """
    if stream not in STREAMS:
        die(f"Error! Invalid stream \"{stream}\". Please select: {' or '.join(STREAMS)}")
    return STREAMS[stream]


def check_arch(arch):
    """ Exits if the architecture is not supported """
    if arch not in ARCHES:
        die(f"Error! Invalid arch \"{arch}\". Please select: {' or '.join(ARCHES)}")
    return ARCHES[arch]


def clone_url(stream, fork=None):
    """ Returns the git URL for a stream

    CentOS Stream trees are public and cloned over https, RHEL trees and forks
    need ssh access.

    Args:
        stream: Stream name (c9s, rhel9, ...)
        fork: Gitlab namespace holding a fork of the stream project
    """
    stream_info = check_stream(stream)
    if bool(fork):
        return FORK_SSH.format(fork=fork, project=stream_info["project"])
    if stream_info["group"] == "centos-stream":
        return GITLAB_HTTPS.format(**stream_info)
    return GITLAB_SSH.format(**stream_info)


def config_name(stream, arch, rt=False, debug=False):
    """ Returns the name of the config generated by make dist-configs for this build """
    version = check_stream(stream)["version"]
    check_arch(arch)
    suffix = ("-rt" if rt else "") + ("-debug" if debug else "")
    return f"kernel-{version}-{arch}{suffix}.config"


def backport_remotes(stream):
    """ Returns the remotes added to a tree to cherry-pick upstream commits

    Args:
        stream: Stream name

    Returns:
        Dictionary [remote name] = url
    """
    remotes = dict(UPSTREAM_REMOTES)
    centos = check_stream(stream)["centos"]
    if centos is not None:
        remotes["centos"] = clone_url(centos)
    return remotes


def cross_compile(arch, host):
    """ Returns the cross-compiler prefix, empty for native builds """
    prefix = check_arch(arch)["cross_compile"]
    if arch == host:
        return ""
    return prefix


def image_path(arch):
    """ Returns the kernel image path relative to the build folder """
    return check_arch(arch)["image"]


def translate_override(override):
    """ Translates NAME=value into scripts/config arguments

    Args:
        override: String like DEBUG_INFO=n or LOCALVERSION=-test

    Returns:
        List of scripts/config arguments
    """
    if "=" not in override:
        die(f"Error! Invalid config override \"{override}\". Use NAME=value")
    name, value = override.split("=", 1)
    name = name.removeprefix("CONFIG_")
    if not bool(name):
        die(f"Error! Invalid config override \"{override}\". Use NAME=value")
    match value:
        case "y":
            return ["--enable", name]
        case "n":
            return ["--disable", name]
        case "m":
            return ["--module", name]
    if value.lstrip("-").isdigit() or value.startswith("0x"):
        return ["--set-val", name, value]
    return ["--set-str", name, value.strip('"')]
