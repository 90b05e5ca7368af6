"""Provisioning steps for the Linux distribution running inside WSL2."""
import shutil
import tempfile
from collections import namedtuple
from functools import partial
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from wslprovision.outcome import Outcome
from wslprovision.prompter import Prompter
from wslprovision.registry import Registry, Step
from wslprovision.runner import AptInstaller, CommandRunner, Installer, PackageManager, PipInstaller
from wslprovision.utils import (
    command_exists, get_real_home, get_real_user, is_root, log_action, log_info, log_warning,
)

APT_LISTS = Path("/var/lib/apt/lists")
OS_RELEASE = Path("/etc/os-release")

BASE_PACKAGES = ["unzip", "python3-pip", "jq", "wslu", "keychain", "curl", "wget", "git"]

CliTool = namedtuple("CliTool", ["package", "fallback", "binaries", "description"])

CLI_TOOLS = [
    CliTool("bat", "batcat", ("bat", "batcat"), "syntax highlighting cat replacement"),
    CliTool("exa", "eza", ("exa", "eza"), "modern ls replacement"),
    CliTool("fd-find", "fd", ("fdfind", "fd"), "fast find replacement"),
    CliTool("ripgrep", "rg", ("rg",), "fast grep replacement"),
    CliTool("fzf", None, ("fzf",), "fuzzy finder"),
    CliTool("tree", None, ("tree",), "directory tree viewer"),
    CliTool("htop", None, ("htop",), "interactive process viewer"),
    CliTool("neofetch", None, ("neofetch",), "system information tool"),
]

PYTHON_PACKAGES = ["ansible", "ansible-lint", "argcomplete", "boto3", "pywinrm", "requests"]

AWS_CLI_URL = "https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip"
SESSION_MANAGER_URL = (
    "https://s3.amazonaws.com/session-manager-downloads/plugin/latest/"
    "ubuntu_64bit/session-manager-plugin.deb"
)

DOCKER_GPG_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_KEYRING = "/etc/apt/keyrings/docker.asc"
DOCKER_SOURCES = "/etc/apt/sources.list.d/docker.list"
DOCKER_PACKAGES = ["docker-ce", "docker-ce-cli", "containerd.io"]
DOCKER_SERVICES = ["docker.service", "containerd.service"]

TFENV_REPO = "https://github.com/tfutils/tfenv.git"

BASHRC_MARKER = ".bashrc_extra"
BASHRC_SOURCE_BLOCK = """
if [ -f ~/.bashrc_extra ]; then
    . ~/.bashrc_extra
fi
"""

GIT_DEFAULTS = {
    "init.defaultBranch": "main",
    "pull.rebase": "false",
    "core.autocrlf": "input",
    "core.editor": "nano",
    "alias.st": "status",
    "alias.co": "checkout",
    "alias.br": "branch",
    "alias.unstage": "reset HEAD --",
    "alias.last": "log -1 HEAD",
    "alias.visual": "!gitk",
}


def home() -> Path:
    return Path(get_real_home())


def sudo_user() -> Optional[str]:
    """Return the user who invoked sudo when running as root on their behalf."""
    user = get_real_user()
    if is_root() and user and user != "root":
        return user
    return None


def as_real_user(*command: str) -> Tuple[str, ...]:
    """Prefix ``command`` so it runs as the invoking user under sudo."""
    user = sudo_user()
    if user:
        return ("sudo", "-u", user, "-H", *command)
    return command


def hand_to_real_user(runner: CommandRunner, *paths: Union[str, Path]) -> None:
    """Give files created as root back to the user who invoked sudo."""
    user = sudo_user()
    if user:
        runner.run("chown", "-R", f"{user}:{user}", *[str(path) for path in paths])


# Package index

def check_package_index() -> bool:
    """Check that apt has downloaded package lists at least once."""
    return APT_LISTS.is_dir() and any(APT_LISTS.glob("*_Packages"))


def report_unavailable_tools(apt: Installer) -> None:
    """Log CLI tools that are missing from the configured repositories."""
    unavailable = []
    for tool in CLI_TOOLS:
        names = [tool.package] + ([tool.fallback] if tool.fallback else [])
        unavailable.extend(name for name in names if not apt.is_available(name))

    if unavailable:
        log_warning(f"Not available in repositories: {', '.join(unavailable)}")
        log_info("Alternatives will be tried where available.")
    else:
        log_info("All packages are available in repositories.")


def update_package_index(apt: PackageManager) -> Outcome:
    log_action("Updating package information from all configured sources...")
    outcome = apt.update()
    if outcome.ok:
        report_unavailable_tools(apt)
    return outcome


# Base and CLI packages

def check_packages(installer: Installer, packages: List[str]) -> bool:
    return all(installer.is_installed(package) for package in packages)


def check_cli_tool(tool: CliTool) -> bool:
    return any(command_exists(binary) for binary in tool.binaries)


# pip and Python packages

def check_pip_current(runner: CommandRunner) -> bool:
    """Check that pip itself is not listed as outdated."""
    result = runner.run("python3", "-m", "pip", "list", "--outdated", "--format=freeze")
    if not result.ok:
        return False
    return not any(line.startswith("pip==") for line in result.output.splitlines())


def upgrade_pip(pip: Installer) -> Outcome:
    log_action("Updating pip to the latest version...")
    return pip.install_many(["pip"], upgrade=True)


def verify_pip(runner: CommandRunner) -> bool:
    return runner.run("python3", "-m", "pip", "--version").ok


def install_python_packages(pip: Installer) -> Outcome:
    log_action("Installing Python packages...")
    outcome = pip.install_many(PYTHON_PACKAGES)
    if not outcome.ok:
        unavailable = [name for name in PYTHON_PACKAGES if not pip.is_available(name)]
        if unavailable:
            log_warning(f"Not available on the package index: {', '.join(unavailable)}")
    return outcome


# Shell configuration

def bashrc_extra_template() -> Path:
    return Path(__file__).parent / "configs" / "bashrc_extra"


def check_bashrc_extra() -> bool:
    """Check the extended bashrc is installed and sourced from ~/.bashrc."""
    bashrc = home() / ".bashrc"
    if not (home() / ".bashrc_extra").exists() or not bashrc.exists():
        return False
    return BASHRC_MARKER in bashrc.read_text(errors="replace")


def install_bashrc_extra(runner: CommandRunner, template: Optional[Path] = None) -> Outcome:
    template = template or bashrc_extra_template()
    if not template.exists():
        return Outcome.skipped(f"{template} not found")

    target = home() / ".bashrc_extra"
    log_action(f"Copying the extended bashrc to {target}...")
    shutil.copyfile(template, target)

    bashrc = home() / ".bashrc"
    content = bashrc.read_text(errors="replace") if bashrc.exists() else ""
    if BASHRC_MARKER not in content:
        with open(bashrc, "a") as f:
            f.write(BASHRC_SOURCE_BLOCK)
        log_info("Added .bashrc_extra sourcing to .bashrc")
    hand_to_real_user(runner, target, bashrc)
    return Outcome.success()


# AWS tooling

def install_aws_cli(runner: CommandRunner) -> Outcome:
    workdir = Path(tempfile.mkdtemp(prefix="awscli-"))
    try:
        archive = workdir / "awscliv2.zip"
        if not runner.download(AWS_CLI_URL, archive).ok:
            return Outcome.failure("Failed to download AWS CLI")

        if not runner.run("unzip", "-q", str(archive), "-d", str(workdir)).ok:
            return Outcome.failure("Failed to unpack AWS CLI")

        result = runner.run_privileged(str(workdir / "aws" / "install"), "--update")
        if not result.ok:
            return Outcome.failure(f"AWS CLI installer exited with {result.exit_code}")
        return Outcome.success()
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


def verify_aws_cli(runner: CommandRunner) -> bool:
    result = runner.run("aws", "--version")
    if result.ok:
        log_info(result.output.strip())
    return result.ok


def install_session_manager_plugin(runner: CommandRunner) -> Outcome:
    workdir = Path(tempfile.mkdtemp(prefix="ssm-"))
    try:
        package = workdir / "session-manager-plugin.deb"
        if not runner.download(SESSION_MANAGER_URL, package).ok:
            return Outcome.failure("Failed to download Session Manager plugin")

        result = runner.run_privileged("dpkg", "-i", str(package))
        if not result.ok:
            return Outcome.failure(f"dpkg -i exited with {result.exit_code}")
        return Outcome.success()
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


# Docker

def read_os_release(path: Optional[Path] = None) -> Dict[str, str]:
    path = path or OS_RELEASE
    values = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip().strip('"')
    return values


def docker_apt_source(runner: CommandRunner) -> Optional[str]:
    """Build the apt source line for Docker's repository."""
    arch = runner.run("dpkg", "--print-architecture")
    codename = read_os_release().get("VERSION_CODENAME")
    if not arch.ok or not codename:
        return None
    return (
        f"deb [arch={arch.output.strip()} signed-by={DOCKER_KEYRING}] "
        f"https://download.docker.com/linux/ubuntu {codename} stable\n"
    )


def install_docker(runner: CommandRunner, apt: PackageManager) -> Outcome:
    log_action("Adding Docker's official GPG key...")
    for args in (
        ("install", "-m", "0755", "-d", "/etc/apt/keyrings"),
        ("curl", "-fsSL", DOCKER_GPG_URL, "-o", DOCKER_KEYRING),
        ("chmod", "a+r", DOCKER_KEYRING),
    ):
        result = runner.run_privileged(*args)
        if not result.ok:
            return Outcome.failure(f"{args[0]} exited with {result.exit_code}")

    source = docker_apt_source(runner)
    if source is None:
        return Outcome.failure("Could not determine architecture or release codename")

    log_action("Adding the Docker repository to apt sources...")
    with tempfile.NamedTemporaryFile("w", suffix=".list", delete=False) as f:
        f.write(source)
    try:
        result = runner.run_privileged("install", "-m", "0644", f.name, DOCKER_SOURCES)
    finally:
        Path(f.name).unlink()
    if not result.ok:
        return Outcome.failure(f"Could not write {DOCKER_SOURCES}")

    outcome = apt.update()
    if not outcome.ok:
        return outcome
    return apt.install_many(DOCKER_PACKAGES)


def verify_docker(runner: CommandRunner) -> bool:
    result = runner.run("docker", "--version")
    if result.ok:
        log_info(result.output.strip())
    return result.ok


def in_docker_group(runner: CommandRunner, user: str) -> bool:
    result = runner.run("id", "-nG", user)
    return result.ok and "docker" in result.output.split()


def check_docker_post_install(runner: CommandRunner) -> bool:
    return (home() / ".docker").is_dir() and in_docker_group(runner, get_real_user())


def configure_docker_post_install(runner: CommandRunner) -> Outcome:
    user = get_real_user()
    docker_dir = home() / ".docker"

    if not docker_dir.is_dir():
        log_action(f"Creating {docker_dir}...")
        docker_dir.mkdir(parents=True, exist_ok=True)
        runner.run_privileged("chown", "-R", f"{user}:{user}", str(docker_dir))
        runner.run_privileged("chmod", "-R", "g+rwx", str(docker_dir))

    if not in_docker_group(runner, user):
        log_action(f"Adding {user} to the docker group...")
        result = runner.run_privileged("usermod", "-aG", "docker", user)
        if not result.ok:
            return Outcome.failure(f"usermod exited with {result.exit_code}")

    for service in DOCKER_SERVICES:
        if not runner.run_privileged("systemctl", "enable", service).ok:
            # WSL distributions without systemd enabled cannot do this.
            log_warning(f"Could not enable {service} on boot.")
    return Outcome.success()


# Terraform version manager

def tfenv_dir() -> Path:
    return home() / ".tfenv"


def check_tfenv() -> bool:
    return tfenv_dir().is_dir()


def clone_tfenv(runner: CommandRunner) -> Outcome:
    log_action("Cloning the repository 'Terraform version manager'...")
    result = runner.run(*as_real_user("git", "clone", "--depth=1", TFENV_REPO, str(tfenv_dir())), retries=2)
    if not result.ok:
        return Outcome.failure(f"git clone exited with {result.exit_code}")
    return Outcome.success()


def verify_tfenv() -> bool:
    return (tfenv_dir() / "bin" / "tfenv").exists()


# Git configuration

def git_config_get(runner: CommandRunner, key: str) -> str:
    result = runner.run(*as_real_user("git", "config", "--global", "--get", key))
    return result.output.strip() if result.ok else ""


def check_git_config(runner: CommandRunner) -> bool:
    if not git_config_get(runner, "user.name") or not git_config_get(runner, "user.email"):
        return False
    return all(git_config_get(runner, key) == value for key, value in GIT_DEFAULTS.items())


def configure_git(runner: CommandRunner, prompter: Prompter) -> Outcome:
    if not git_config_get(runner, "user.name") or not git_config_get(runner, "user.email"):
        log_warning("No user data configuration in GIT.")
        name = prompter.ask("Enter your name")
        last_name = prompter.ask("Enter your last name")
        email = prompter.ask("Enter your e-mail address")
        full_name = f"{name} {last_name}".strip()
        if not full_name or not email:
            return Outcome.skipped("git identity not provided")
        runner.run(*as_real_user("git", "config", "--global", "user.name", full_name))
        runner.run(*as_real_user("git", "config", "--global", "user.email", email))
        log_info(f"Git user data set to {full_name} <{email}>")
    else:
        log_info("The user data in GIT is already configured.")

    log_action("Setting up Git defaults...")
    for key, value in GIT_DEFAULTS.items():
        result = runner.run(*as_real_user("git", "config", "--global", key, value))
        if not result.ok:
            return Outcome.failure(f"git config {key} exited with {result.exit_code}")
    return Outcome.success()


def build_registry(runner: CommandRunner, prompter: Prompter) -> Registry:
    """Register the WSL distribution steps in the order they must run."""
    apt = AptInstaller(runner)
    pip = PipInstaller(runner)
    registry = Registry()

    registry.register(Step(
        name="package-index",
        description="Refresh and upgrade apt packages",
        check=check_package_index,
        apply=partial(update_package_index, apt),
    ))
    registry.register(Step(
        name="base-packages",
        description="Base packages: " + ", ".join(BASE_PACKAGES),
        check=partial(check_packages, apt, BASE_PACKAGES),
        apply=partial(apt.install_many, BASE_PACKAGES),
    ))
    for tool in CLI_TOOLS:
        registry.register(Step(
            name=tool.package,
            description=tool.description,
            check=partial(check_cli_tool, tool),
            apply=partial(apt.install, tool.package),
            fallback=partial(apt.install, tool.fallback) if tool.fallback else None,
            optional=True,
        ))
    registry.register(Step(
        name="pip-upgrade",
        description="Latest pip for the system interpreter",
        check=partial(check_pip_current, runner),
        apply=partial(upgrade_pip, pip),
        verify=partial(verify_pip, runner),
    ))
    registry.register(Step(
        name="python-packages",
        description="Python packages: " + ", ".join(PYTHON_PACKAGES),
        check=partial(check_packages, pip, PYTHON_PACKAGES),
        apply=partial(install_python_packages, pip),
    ))
    registry.register(Step(
        name="bashrc-extra",
        description="Extended bashrc sourced from ~/.bashrc",
        check=check_bashrc_extra,
        apply=partial(install_bashrc_extra, runner),
        optional=True,
    ))
    registry.register(Step(
        name="aws-cli",
        description="AWS CLI v2",
        check=partial(command_exists, "aws"),
        apply=partial(install_aws_cli, runner),
        verify=partial(verify_aws_cli, runner),
    ))
    registry.register(Step(
        name="session-manager-plugin",
        description="AWS Session Manager plugin",
        check=partial(command_exists, "session-manager-plugin"),
        apply=partial(install_session_manager_plugin, runner),
        optional=True,
    ))
    registry.register(Step(
        name="docker",
        description="Docker Engine from Docker's apt repository",
        check=partial(command_exists, "docker"),
        apply=partial(install_docker, runner, apt),
        verify=partial(verify_docker, runner),
    ))
    registry.register(Step(
        name="docker-post-install",
        description="Docker group membership and services on boot",
        check=partial(check_docker_post_install, runner),
        apply=partial(configure_docker_post_install, runner),
    ))
    registry.register(Step(
        name="tfenv",
        description="Terraform version manager in ~/.tfenv",
        check=check_tfenv,
        apply=partial(clone_tfenv, runner),
        verify=verify_tfenv,
    ))
    registry.register(Step(
        name="git-config",
        description="Git identity, defaults and aliases",
        check=partial(check_git_config, runner),
        apply=partial(configure_git, runner, prompter),
    ))
    return registry
