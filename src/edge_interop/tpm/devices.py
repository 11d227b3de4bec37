"""
TPM transport selection.

Maps the sample's device flags to tpm2-tss TCTI configuration strings.
"""
from typing import Iterable, Optional

# Linux TPM device file / access broker (use this one inside the EFLOW VM)
DEVICE_LINUX = "-tpm0"
# TPM 2.0 simulator over TCP
DEVICE_SIMULATOR = "-tcp"
# Windows TBS API, for testing on the Windows host
DEVICE_WIN_TBS = "-tbs"

DEFAULT_DEVICE = DEVICE_LINUX
DEVICES = (DEVICE_LINUX, DEVICE_SIMULATOR, DEVICE_WIN_TBS)

DEFAULT_DEVICE_PATH = "/dev/tpmrm0"
DEFAULT_SIMULATOR_HOST = "127.0.0.1"
DEFAULT_SIMULATOR_PORT = 2321


def parse_arguments(args: Iterable[str]) -> Optional[str]:
    """
    Returns the selected device flag, DEFAULT_DEVICE when none is given,
    or None if any argument is not a known device flag.
    Matching is case-insensitive; the last flag wins.
    """
    device = DEFAULT_DEVICE
    for arg in args:
        match = arg.lower()
        if match not in DEVICES:
            return None
        device = match
    return device


def tcti_for_device(device: str,
                    device_path: str = DEFAULT_DEVICE_PATH,
                    simulator_host: str = DEFAULT_SIMULATOR_HOST,
                    simulator_port: int = DEFAULT_SIMULATOR_PORT) -> str:
    if device == DEVICE_SIMULATOR:
        return f"mssim:host={simulator_host},port={simulator_port}"
    if device == DEVICE_WIN_TBS:
        return "tbs"
    if device == DEVICE_LINUX:
        return f"device:{device_path}"
    raise ValueError(f"Unknown device selected: {device}")


def usage() -> str:
    return "\n".join([
        "",
        "Usage: edge-interop-tpm-nv-read [<device>]",
        "",
        f"    <device> can be '{DEVICE_LINUX}' or '{DEVICE_WIN_TBS}' or '{DEVICE_SIMULATOR}'. Defaults to '{DEFAULT_DEVICE}'.",
        f"        If <device> is '{DEVICE_LINUX}', the program will connect to the TPM via",
        "        the TPM2 Access Broker on the EFLOW VM.",
        f"        If <device> is '{DEVICE_SIMULATOR}', the program will connect to a simulator",
        "        listening on a TCP port.",
        f"        If <device> is '{DEVICE_WIN_TBS}', the program will use the Windows TBS interface to talk",
        "        to the TPM device (for use on testing within the Windows Host).",
    ])
