""" Helpers shared by the RHEL kernel builder.
    Colored output, ~/.rhkb configuration, the build log and a small wrapper to run
    external commands with the build environment
"""
import sys
import logging
import configparser
from datetime import datetime
from os import path, makedirs, environ
from subprocess import run, Popen, PIPE, STDOUT, DEVNULL
from colorama import Fore, Style

LOG = logging.getLogger("rhkb")
LOG.addHandler(logging.NullHandler())


def print_blue(text):
    """ Print a blue text """
    print(Fore.BLUE + text + Style.RESET_ALL)
    LOG.info(text)


def print_red_blue(first, second):
    """ Print a red text followed by a blue one """
    print(Fore.RED + first + Fore.BLUE + second + Style.RESET_ALL)
    LOG.info("%s%s", first, second)


def print_magenta(text):
    """ Print a magenta text """
    print(Fore.MAGENTA + text + Style.RESET_ALL)
    LOG.info(text)


def print_green_blue(first, second):
    """ Print a green text followed by a blue one """
    print(Fore.GREEN + first + Fore.BLUE + second + Style.RESET_ALL)
    LOG.info("%s%s", first, second)


def die(message):
    """ Logs the error and exits with a non-zero status

    Args:
        message: Error message
    """
    LOG.error(message)
    sys.exit(Fore.RED + message + Style.RESET_ALL)


def get_config(section, name, mandatory=True):
    """ Gets the configuration by name

    Args:
        section: A configuration section or the environment
        name: Name of the configuration
        mandatory: True if mandatory

    Returns:
        Exit if a mandatory config is not found.
        Returns configuration value or an empty string.
    """
    if name in section and bool(section[name]):
        return section[name]
    if mandatory:
        return die(f"Error! \"{name}\" is not set. Example: export {name}=/path")
    return ""


def rhkb_config_section(section_name):
    """ Reads ~/.rhkb configuration file and returns a section

    Args:
        section_name: Section name to be returned

    Returns:
        The section or None
    """
    rhkb_config = f"{path.expanduser('~')}/.rhkb"
    if not path.exists(rhkb_config):
        return None
    configs_file = configparser.ConfigParser()
    configs_file.read(rhkb_config)
    if section_name in configs_file:
        return configs_file[section_name]
    return None


def setup_log(log_dir):
    """ Creates a timestamped log file and attaches it to the rhkb logger

    Args:
        log_dir: Folder where the log is written

    Returns:
        Path of the log file
    """
    makedirs(log_dir, exist_ok=True)
    log_file = path.join(log_dir, f"rhkb-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log")
    for old in [each for each in LOG.handlers if isinstance(each, logging.FileHandler)]:
        LOG.removeHandler(old)
        old.close()
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    LOG.addHandler(handler)
    LOG.setLevel(logging.INFO)
    LOG.propagate = False
    return log_file


class BashCommands:
    """ Execute bash commands with the build environment """

    def __init__(self, dry_run=False):
        self.make_command = []
        self.debug = dry_run
        self.environ = environ.copy()

    def set_make(self, arch, kernel_src, kernel_build, jobs, cross_compiler=""):
        """ Configure make parameters

        Args:
            arch: The kernel ARCH (x86, arm64, powerpc, s390)
            kernel_src: Kernel source tree
            kernel_build: Path where the kernel will be built
            jobs: Number of parallel make jobs
            cross_compiler: Cross-Compiler prefix (aarch64-linux-gnu-)
        """
        self.make_command = ["make", f"-j{jobs}", "-C", kernel_src, f"O={kernel_build}",
                             f"ARCH={arch}"]
        if bool(cross_compiler):
            self.make_command += [f"CROSS_COMPILE={cross_compiler}"]

    def get_make_arguments(self):
        """ Returns the make parameters """
        return self.make_command[1:]

    def print_command(self, command, debug_type=(False, True)):
        """ Print the command being executed

        Args:
            command: List of strings, where the first position is the actual command,
            and the rest are parameters
            debug_type: In dry run mode (Print , Execute)

        Returns:
            False if the command must be skipped
        """
        _print, _exec = debug_type
        if self.debug and _print:
            print(' '.join(command))
        if self.debug:
            return _exec
        return True

    def rhkb_run(self, command, debug_type=(False, True), **kwargs):
        """ Runs a bash command silently

        Args:
            command: List of strings, where the first position is the actual command,
            and the rest are parameters
            debug_type: In dry run mode (Print , Execute)

        Returns:
            True or False if the process has successfully executed
        """
        if not self.print_command(command, debug_type):
            return True
        try:
            # pylint: disable=subprocess-run-check
            proc = run(command, **kwargs, env=self.environ, stdout=DEVNULL, stderr=DEVNULL)
        except FileNotFoundError:
            return False
        return proc.returncode == 0

    def rhkb_run_str(self, command, debug_type=(False, True), **kwargs):
        """ Executes command and returns it's output

        Args:
            command: List of strings, where the first position is the actual command,
            and the rest are parameters
            debug_type: In dry run mode (Print , Execute)

        Returns:
            boolean for valid output
            stdout string
            stderr string
        """
        if not self.print_command(command, debug_type):
            return True, "", ""
        try:
            # pylint: disable=subprocess-run-check
            proc = run(command, **kwargs, capture_output=True, env=self.environ)
        except FileNotFoundError:
            return die("FAIL: " + ' '.join(command))
        return proc.returncode == 0, proc.stdout.decode("utf-8")[:-1], proc.stderr.decode("utf-8")[:-1]

    def rhkb_run_log(self, command, debug_type=(True, False), **kwargs):
        """ Executes command streaming its output to the console and to the log

        Args:
            command: List of strings, where the first position is the actual command,
            and the rest are parameters
            debug_type: In dry run mode (Print , Execute)

        Returns:
            True or False if the process has successfully executed
        """
        if not self.print_command(command, debug_type):
            return True
        LOG.info("$ %s", ' '.join(command))
        try:
            with Popen(command, **kwargs, env=self.environ, stdout=PIPE, stderr=STDOUT,
                       text=True, errors="replace") as proc:
                for line in proc.stdout:
                    print(line, end='')
                    LOG.info(line.rstrip('\n'))
        except FileNotFoundError:
            return die("FAIL: " + ' '.join(command))
        LOG.info("exit status %d", proc.returncode)
        return proc.returncode == 0

    def tool_available(self, tool):
        """ Checks if a tool can be executed

        Args:
            tool: Tool name or path
        """
        return self.rhkb_run([tool, "--version"])

    def git(self, args, **kwargs):
        """ Executes git

        Args:
            args: List of parameters for git
        """
        return self.rhkb_run_log(["git"] + args, **kwargs)

    def make(self, args):
        """ Executes make command with the build parameters

        Args:
            args: List of parameters for make
        """
        if len(self.make_command) == 0:
            die("FAIL: Make command not set")
        return self.rhkb_run_log(self.make_command + args)

    def make_pass(self, args):
        """ Passes the command directly to make keeping the terminal, used by menuconfig

        Args:
            args: List of parameters for make
        """
        if len(self.make_command) == 0:
            die("FAIL: Make command not set")
        if not self.print_command(self.make_command + args, (True, False)):
            return True
        LOG.info("$ %s", ' '.join(self.make_command + args))
        try:
            proc = run(self.make_command + args, env=self.environ, check=False)
        except FileNotFoundError:
            return die("FAIL: " + ' '.join(self.make_command + args))
        return proc.returncode == 0
