#!/usr/bin/env python3
""" Python script to clone, configure, patch and build CentOS Stream and RHEL kernels,
    optionally packaging the result as RPMs
"""
import sys
import time
import argparse
import platform
from glob import glob
from os import path, listdir, cpu_count
from colorama import Fore
import rhkb_utils as rhkb
import rhkb_streams as streams


def kernel_builder_configs():
    """ Reads kernel_builder configuration from ~/.rhkb

    Returns:
        log_dir: Folder where the build logs are written
        jobs: Number of parallel make jobs, empty when not configured
        fork: Default gitlab namespace of a fork
        overrides: List of NAME=value config overrides
    """
    kb_section = rhkb.rhkb_config_section("kernel_builder")
    if kb_section is None:
        kb_section = {}
    log_dir = rhkb.get_config(kb_section, "log_dir", False)
    if not bool(log_dir):
        log_dir = "~/.rhkb_logs"
    jobs = rhkb.get_config(kb_section, "jobs", False)
    fork = rhkb.get_config(kb_section, "fork", False)
    overrides = rhkb.get_config(kb_section, "config_overrides", False).split()
    return path.expanduser(log_dir), jobs, fork, overrides


def default_arch():
    """ Returns the host architecture if supported, x86_64 otherwise """
    if platform.machine() in streams.ARCHES:
        return platform.machine()
    return "x86_64"


class StreamConfig:
    """ Stores information for a particular stream build

    Stores build parameters selected for this run, like, the stream, the architecture,
    the kernel variant and the source and build folders.
    Everything is validated here, before the first external command is executed.

    Attributes:
        build_params: Dictionary of build parameters
    """

    def __init__(self, namespace, bash_env, default_fork):
        self.build_params = {}

        self.build_params['stream'] = namespace.stream
        self.build_params['stream_info'] = streams.check_stream(namespace.stream)
        self.build_params['arch'] = namespace.arch
        self.build_params['arch_info'] = streams.check_arch(namespace.arch)
        if namespace.rt and namespace.arch not in streams.RT_ARCHES:
            rhkb.die(f"Error! Real-time kernel not available for {namespace.arch}")
        self.build_params['rt'] = namespace.rt
        self.build_params['debug'] = namespace.debug_kernel

        # Select where to clone from
        clone_from = namespace.clone_from
        if clone_from is None:
            clone_from = "fork" if bool(namespace.fork) else "upstream"
        if clone_from not in ("upstream", "fork"):
            rhkb.die(f"Error! Invalid repository \"{clone_from}\". Please select: upstream or fork")
        fork = namespace.fork if bool(namespace.fork) else default_fork
        if clone_from == "fork" and not bool(fork):
            rhkb.die("Error! Cloning from a fork needs --fork or \"fork\" in ~/.rhkb")
        self.build_params['clone_from'] = clone_from
        self.build_params['fork'] = fork if clone_from == "fork" else ""

        kernel_src = rhkb.get_config(bash_env, 'kernel_src')
        kernel_build = rhkb.get_config(bash_env, 'kernel_build')
        self.build_params['kernel_src'] = path.abspath(path.expanduser(kernel_src))
        self.build_params['kernel_build'] = path.abspath(path.expanduser(kernel_build))
        if namespace.clone:
            if path.exists(self.kernel_src) and not path.isdir(self.kernel_src):
                rhkb.die(f"Error! Can't clone, {self.kernel_src} is not a folder")
            if path.isdir(self.kernel_src) and len(listdir(self.kernel_src)) > 0:
                rhkb.die(f"Error! Can't clone, {self.kernel_src} is not empty")
        elif not path.isdir(self.kernel_src):
            rhkb.die(f"Error! Kernel source {self.kernel_src} doesn't exist. Clone it with --clone")

        self.build_params['patches'] = ""
        if bool(namespace.patches):
            if not path.isdir(namespace.patches):
                rhkb.die(f"Error! Patches folder {namespace.patches} doesn't exist")
            self.build_params['patches'] = path.abspath(namespace.patches)

        for step in ("clone", "backport", "configure", "menuconfig", "build", "rpm"):
            self.build_params[step] = getattr(namespace, step)

    def __getattr__(self, name):
        return self.build_params[name]

    def clone_url(self):
        """ Returns the URL the tree is cloned from """
        return streams.clone_url(self.stream, self.fork)

    def upstream_url(self):
        """ Returns the URL of the stream official tree """
        return streams.clone_url(self.stream)

    def config_file(self):
        """ Returns the name of the stream config for this arch and variant """
        return streams.config_name(self.stream, self.arch, self.rt, self.debug)

    def variant(self):
        """ Returns a human readable kernel variant """
        variant = "rt" if self.rt else "standard"
        return variant + (" debug" if self.debug else "")


class KernelBuilder:
    """ Stores information for Kernel Builder

    Stores build environment, tools, and configurations used to clone, configure, patch
    and build the kernel.

    Attributes:
        env: Dictionary of configuration for the builder
        stream_config: Configuration for the selected stream
        timings: List of (step, seconds) already executed
    """

    def __init__(self, namespace):
        """ Init path and environment for the build """
        self.bash = rhkb.BashCommands(namespace.dry_run)
        self.env = {}
        self.timings = []
        self.env['log_dir'], jobs, default_fork, overrides = kernel_builder_configs()
        self.env['log_file'] = rhkb.setup_log(self.log_dir)

        if namespace.jobs is not None:
            jobs = namespace.jobs
        elif not bool(jobs):
            jobs = cpu_count() or 1
        try:
            self.env['jobs'] = int(jobs)
        except ValueError:
            rhkb.die(f"Error! Invalid jobs \"{jobs}\" in ~/.rhkb")
        if self.jobs < 1:
            rhkb.die(f"Error! Invalid number of jobs {self.jobs}")

        self.stream_config = StreamConfig(namespace, self.bash.environ, default_fork)
        self.env['config_overrides'] = [arg for override in streams.CONFIG_OVERRIDES
                                        for arg in override]
        for override in overrides:
            self.env['config_overrides'] += streams.translate_override(override)

        self.env['cc'] = streams.cross_compile(self.stream_config.arch, platform.machine())
        self.bash.set_make(self.stream_config.arch_info["make_arch"],
                           self.stream_config.kernel_src, self.stream_config.kernel_build,
                           self.jobs, self.cc)

    def __getattr__(self, name):
        return self.env[name]

    def __git(self, args, error):
        """ Runs git inside the kernel source or exits

        Args:
            args: List of parameters for git
            error: Message used when git fails
        """
        if not self.bash.git(["-C", self.stream_config.kernel_src] + args):
            rhkb.die(f"Error! {error}")

    def __make(self, args, error):
        """ Runs make with the build parameters or exits """
        if not self.bash.make(args):
            rhkb.die(f"Error! {error}")

    def __check_artifact(self, pattern):
        """ Checks if the build produced a file

        Args:
            pattern: Glob pattern relative to the build folder

        Returns:
            True if at least one file matches
        """
        artifact = f"{self.stream_config.kernel_build}/{pattern}"
        if self.bash.debug:
            print(f"test -e {artifact}")
            return True
        found = sorted(glob(artifact))
        if len(found) == 0:
            rhkb.print_red_blue("# Missing ", artifact)
            return False
        for each in found:
            rhkb.print_green_blue("# Found ", each)
        return True

    def environment(self):
        """ Print the current build setup """
        padding = 18
        cfg = self.stream_config
        print("Stream:".ljust(padding), f"{cfg.stream} ({cfg.stream_info['kind']}-stream)")
        print("ARCH:".ljust(padding), f"{cfg.arch} ({cfg.arch_info['make_arch']})")
        if self.cc:
            print("CROSS_COMPILE:".ljust(padding), self.cc)
        print("Variant:".ljust(padding), cfg.variant())
        print("Config File:".ljust(padding), cfg.config_file())
        print("Source Path:".ljust(padding), cfg.kernel_src)
        print("Build Path:".ljust(padding), cfg.kernel_build)
        print("Make:".ljust(padding), ' '.join(self.bash.get_make_arguments()))
        if bool(cfg.patches):
            print("Patches:".ljust(padding), cfg.patches)
        if self.log_file:
            print("Log:".ljust(padding), self.log_file)

    def check_tools(self):
        """ Exits if any of the required commands is missing """
        tools = ["git", "make", "ctags", f"{self.cc}gcc"]
        if self.stream_config.rpm:
            tools.append("rpmbuild")
        missing = [tool for tool in tools if not self.bash.tool_available(tool)]
        if len(missing) > 0:
            rhkb.die(f"Error! Required command not found: {', '.join(missing)}")

    def clone(self):
        """ Clones the stream tree, adding the official tree as upstream of a fork """
        cfg = self.stream_config
        url = cfg.clone_url()
        rhkb.print_blue(f"# Cloning {Fore.MAGENTA}{url}{Fore.BLUE} branch {cfg.stream_info['branch']}")
        if not self.bash.git(["clone", "--branch", cfg.stream_info["branch"], url, cfg.kernel_src]):
            rhkb.die(f"Error! Fail to clone {url}")
        if cfg.clone_from == "fork":
            self.__git(["remote", "add", "upstream", cfg.upstream_url()],
                       "Fail to add upstream remote")
            self.__git(["fetch", "upstream"], "Fail to fetch upstream")

    def prepare_backport(self):
        """ Adds and fetches the remotes used to cherry-pick upstream commits """
        valid, remotes, _ = self.bash.rhkb_run_str(["git", "-C", self.stream_config.kernel_src,
                                                   "remote"])
        if not valid and not self.bash.debug:
            rhkb.die(f"Error! {self.stream_config.kernel_src} is not a git tree")
        existing = remotes.split() if valid else []
        for name, url in streams.backport_remotes(self.stream_config.stream).items():
            if name not in existing:
                rhkb.print_blue(f"# Adding remote {Fore.MAGENTA}{name}{Fore.BLUE} {url}")
                self.__git(["remote", "add", name, url], f"Fail to add remote {name}")
            rhkb.print_blue(f"# Fetching {Fore.MAGENTA}{name}")
            self.__git(["fetch", name], f"Fail to fetch {name}")

    def configure(self):
        """ Configure the kernel using the stream config """
        cfg = self.stream_config
        build_config = f"{cfg.kernel_build}/.config"
        if not path.exists(cfg.kernel_build):
            if not self.bash.rhkb_run(["mkdir", "-p", cfg.kernel_build], debug_type=(True, False)):
                rhkb.die(f"Error! Fail to create {cfg.kernel_build}")

        rhkb.print_blue("# Generating stream configs")
        if not self.bash.rhkb_run_log(["make", "-C", cfg.kernel_src, "dist-configs"]):
            rhkb.die("Error! make dist-configs failed")

        stream_config = f"{cfg.kernel_src}/redhat/configs/{cfg.config_file()}"
        rhkb.print_blue(f"# Kernel config using{Fore.CYAN} {cfg.config_file()}")
        if not self.bash.debug and not path.exists(stream_config):
            rhkb.die(f"Error! {stream_config} doesn't exist")
        if not self.bash.rhkb_run(["cp", stream_config, build_config], debug_type=(True, False)):
            rhkb.die(f"Error! Fail to copy {stream_config}")

        rhkb.print_blue("# Applying config overrides")
        scripts_config = [f"{cfg.kernel_src}/scripts/config", "--file", build_config]
        if not self.bash.rhkb_run_log(scripts_config + self.config_overrides):
            rhkb.die("Error! Fail to apply config overrides")
        self.__make(["olddefconfig"], "make olddefconfig failed")

        if cfg.menuconfig and not self.bash.make_pass(["menuconfig"]):
            rhkb.die("Error! make menuconfig failed")

        rhkb.print_blue("# Generating tags")
        self.__make(["tags"], "make tags failed")

    def apply_patches(self):
        """ Applies every patch inside the patches folder, in name order """
        patches_folder = self.stream_config.patches
        patches = sorted(each for each in listdir(patches_folder)
                         if each.endswith((".patch", ".mbox")))
        if len(patches) == 0:
            rhkb.die(f"Error! No patches found in {patches_folder}")
        rhkb.print_blue(f"# Applying {len(patches)} patches from {Fore.MAGENTA}{patches_folder}")
        patches = [path.join(patches_folder, each) for each in patches]
        if not self.bash.git(["-C", self.stream_config.kernel_src, "am", "--3way"] + patches):
            self.bash.git(["-C", self.stream_config.kernel_src, "am", "--abort"])
            rhkb.die("Error! Fail to apply patches")

    def build(self):
        """ Builds the kernel and optionally the RPM packages

        Returns:
            True if make succeeded and the expected files exist
        """
        cfg = self.stream_config
        rhkb.print_blue("# Building the kernel")
        if not self.bash.make([]):
            rhkb.print_red_blue("# Build ", "FAIL")
            return False
        if not self.__check_artifact(streams.image_path(cfg.arch)):
            return False
        if not cfg.rpm:
            return True

        rhkb.print_blue("# Building RPM packages")
        rpm_topdir = f"{cfg.kernel_build}/rpmbuild"
        if not self.bash.make(["binrpm-pkg", f"RPMOPTS=--define '_topdir {rpm_topdir}'"]):
            rhkb.print_red_blue("# Packaging ", "FAIL")
            return False
        return self.__check_artifact(f"rpmbuild/RPMS/{cfg.arch_info['rpm_arch']}/kernel-*.rpm")

    def steps(self):
        """ Returns the list of (name, function) selected for this run """
        cfg = self.stream_config
        steps = [("tools", self.check_tools)]
        if cfg.clone:
            steps.append(("clone", self.clone))
        if cfg.backport:
            steps.append(("backport", self.prepare_backport))
        if cfg.configure:
            steps.append(("configure", self.configure))
        if bool(cfg.patches):
            steps.append(("patches", self.apply_patches))
        if cfg.build:
            steps.append(("build", self.build))
        return steps

    def run(self):
        """ Executes every selected step in order, stopping at the first failure

        Returns:
            True if all steps succeeded
        """
        for name, step in self.steps():
            start = time.monotonic()
            ret = step()
            self.timings.append((name, time.monotonic() - start))
            rhkb.LOG.info("step %s took %.1fs", name, self.timings[-1][1])
            if ret is False:
                return False
        return True

    def report(self, success):
        """ Prints how long each step took and the result """
        padding = 18
        rhkb.print_magenta("## Timings")
        for name, seconds in self.timings:
            print(f"{name}:".ljust(padding), time.strftime("%H:%M:%S", time.gmtime(seconds)))
        total = sum(seconds for _, seconds in self.timings)
        print("total:".ljust(padding), time.strftime("%H:%M:%S", time.gmtime(total)))
        if self.log_file:
            print("Log:".ljust(padding), self.log_file)
        if success:
            rhkb.print_green_blue("# Result ", "PASS")
        else:
            rhkb.print_red_blue("# Result ", "FAIL")


def command_line():
    """ Argparse command line configuration """
    _desc = "CentOS Stream and RHEL kernel builder.\n\n" \
            "export kernel_src=PATH               Kernel source tree (cloned into with --clone)\n" \
            "export kernel_build=PATH             Build output folder, passed to make as O="
    cmd_parser = argparse.ArgumentParser(description=_desc,
                                         formatter_class=argparse.RawTextHelpFormatter)
    cmd_parser.add_argument("-a", "--arch", choices=list(streams.ARCHES), default=default_arch(),
                            help="Target architecture")
    cmd_parser.add_argument("-s", "--stream", choices=list(streams.STREAMS), required=True,
                            help="Kernel stream")
    cmd_parser.add_argument("--clone", action="store_true", default=False,
                            help="Clone the stream tree into $kernel_src")
    cmd_parser.add_argument("--clone-from", choices=["upstream", "fork"], default=None,
                            help="Clone the official tree or a fork")
    cmd_parser.add_argument("-f", "--fork", type=str, default="",
                            help="Gitlab namespace of a fork of the stream project")
    cmd_parser.add_argument("--backport", action="store_true", default=False,
                            help="Add and fetch upstream remotes used for backporting")
    cmd_parser.add_argument("-c", "--configure", action="store_true", default=False,
                            help="Configure the kernel with the stream config")
    cmd_parser.add_argument("-m", "--menuconfig", action="store_true", default=False,
                            help="Run menuconfig after configuring")
    cmd_parser.add_argument("-p", "--patches", type=str, default="",
                            help="Folder containing patches to be applied with git am")
    cmd_parser.add_argument("-b", "--build", action="store_true", default=False,
                            help="Build the kernel")
    cmd_parser.add_argument("-r", "--rpm", action="store_true", default=False,
                            help="Build RPM packages (implies --build)")
    cmd_parser.add_argument("--rt", action="store_true", default=False,
                            help="Use the real-time kernel config")
    cmd_parser.add_argument("-g", "--debug-kernel", action="store_true", default=False,
                            help="Use the debug kernel config")
    cmd_parser.add_argument("-j", "--jobs", type=int, default=None,
                            help="Number of make jobs")
    cmd_parser.add_argument("-d", "--dry-run", action="store_true", default=False,
                            help="Print all commands instead of executing them")
    return cmd_parser


def parse_arguments(argv=None):
    """ Parses the command line, --rpm implies --build and --menuconfig implies --configure """
    args = command_line().parse_args(argv)
    args.build = args.build or args.rpm
    args.configure = args.configure or args.menuconfig
    return args


def main(argv=None):
    """ Main function """
    args = parse_arguments(argv)
    kernel_builder = KernelBuilder(args)
    kernel_builder.environment()
    success = kernel_builder.run()
    kernel_builder.report(success)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
