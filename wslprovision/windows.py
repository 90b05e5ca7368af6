"""Provisioning steps for the Windows host that runs WSL2.

These run from an elevated Windows Python and only prepare the host: the
optional features WSL2 needs, the default WSL version and the distribution
itself. Everything inside the distribution is handled by ``linux.py``.
"""
from functools import partial

from wslprovision.outcome import Outcome
from wslprovision.registry import Registry, Step
from wslprovision.runner import CommandResult, CommandRunner
from wslprovision.utils import log_action, log_info

WSL_FEATURE = "Microsoft-Windows-Subsystem-Linux"
VM_PLATFORM_FEATURE = "VirtualMachinePlatform"
DEFAULT_DISTRO = "Ubuntu-24.04"

# dism reports success with a pending reboot as 3010.
REBOOT_REQUIRED = 3010


def wsl_output(result: CommandResult) -> str:
    """wsl.exe writes UTF-16, which arrives with interleaved NUL bytes."""
    return result.output.replace("\x00", "")


def check_feature(runner: CommandRunner, feature: str) -> bool:
    result = runner.run("dism.exe", "/online", "/get-featureinfo", f"/featurename:{feature}")
    return result.ok and "State : Enabled" in result.output


def verify_feature(runner: CommandRunner, feature: str) -> bool:
    """Enabled, or enabled pending the reboot dism asked for."""
    result = runner.run("dism.exe", "/online", "/get-featureinfo", f"/featurename:{feature}")
    return result.ok and ("State : Enabled" in result.output or "State : Enable Pending" in result.output)


def enable_feature(runner: CommandRunner, feature: str) -> Outcome:
    log_action(f"Enabling Windows feature {feature}...")
    result = runner.run(
        "dism.exe", "/online", "/enable-feature", f"/featurename:{feature}", "/all", "/norestart"
    )
    if result.ok:
        return Outcome.success()
    if result.exit_code == REBOOT_REQUIRED:
        log_info(f"{feature} enabled; a reboot is required to finish.")
        return Outcome.success()
    return Outcome.failure(f"dism exited with {result.exit_code}")


def check_default_version(runner: CommandRunner) -> bool:
    result = runner.run("wsl.exe", "--status")
    return result.ok and "Default Version: 2" in wsl_output(result)


def set_default_version(runner: CommandRunner) -> Outcome:
    log_action("Setting WSL default version to 2...")
    result = runner.run("wsl.exe", "--set-default-version", "2")
    if not result.ok:
        return Outcome.failure(f"wsl --set-default-version exited with {result.exit_code}")
    return Outcome.success()


def check_distro(runner: CommandRunner, distro: str) -> bool:
    result = runner.run("wsl.exe", "--list", "--quiet")
    if not result.ok:
        return False
    return distro in [line.strip() for line in wsl_output(result).splitlines()]


def install_distro(runner: CommandRunner, distro: str) -> Outcome:
    log_action(f"Installing WSL distribution {distro}...")
    result = runner.run("wsl.exe", "--install", "-d", distro, "--no-launch", retries=2)
    if not result.ok:
        return Outcome.failure(f"wsl --install exited with {result.exit_code}")
    return Outcome.success()


def build_registry(runner: CommandRunner, distro: str = DEFAULT_DISTRO) -> Registry:
    """Register the Windows host steps in the order they must run."""
    registry = Registry()
    for name, feature in (("wsl-feature", WSL_FEATURE), ("virtual-machine-platform", VM_PLATFORM_FEATURE)):
        registry.register(Step(
            name=name,
            description=f"Windows optional feature {feature}",
            check=partial(check_feature, runner, feature),
            apply=partial(enable_feature, runner, feature),
            verify=partial(verify_feature, runner, feature),
        ))
    registry.register(Step(
        name="wsl-default-version",
        description="WSL 2 as the default version",
        check=partial(check_default_version, runner),
        apply=partial(set_default_version, runner),
    ))
    registry.register(Step(
        name="wsl-distro",
        description=f"{distro} distribution",
        check=partial(check_distro, runner, distro),
        apply=partial(install_distro, runner, distro),
    ))
    return registry
