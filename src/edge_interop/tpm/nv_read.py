"""
TPM NV Memory Read Sample.

Connects to the TPM selected on the command line, reads the 8 bytes that
were previously stored at NV index 3001 and prints them.

NOTE: only NV reads are supported on the EFLOW VM. The index must have been
defined and written on the Windows host beforehand, with the auth value
used below.
"""
import logging
import sys
from typing import List, Optional

from tpm2_pytss import ESAPI, TSS2_Exception
from tpm2_pytss.constants import TPM2_RC, TPM2_SU

from edge_interop.logs import setup_logging
from edge_interop.tpm.devices import DEVICE_SIMULATOR, parse_arguments, tcti_for_device, usage

logger = logging.getLogger(__name__)

NV_INDEX_BASE = 0x01000000
NV_INDEX = 3001  # Arbitrarily chosen
DATA_LENGTH = 8  # Length of the data stored into the TPM
NV_AUTH = bytes([1, 2, 3, 4, 5, 6, 7, 8])


def nv_handle(index: int) -> int:
    """TPM handle of an NV index (3001 -> 0x01000BB9)."""
    return NV_INDEX_BASE + index


def format_bytes(data: bytes) -> str:
    """b'\\x01\\xab' -> '01-AB'"""
    return "-".join(f"{b:02X}" for b in data)


def startup_simulator(esapi: ESAPI):
    """
    A simulator needs the startup the platform firmware would otherwise do.
    A simulator that is already running reports TPM2_RC_INITIALIZE, which is fine.
    """
    try:
        esapi.startup(TPM2_SU.CLEAR)
    except TSS2_Exception as e:
        if e.rc != TPM2_RC.INITIALIZE:
            raise
        logger.info("TPM simulator already started up.")


def read_nv(esapi: ESAPI, index: int = NV_INDEX, size: int = DATA_LENGTH, auth: bytes = NV_AUTH) -> bytes:
    """Reads `size` bytes at offset 0 of the NV index, authorizing with `auth`."""
    nv_tr = esapi.tr_from_tpmpublic(nv_handle(index))
    esapi.tr_set_auth(nv_tr, auth)
    data = esapi.nv_read(nv_tr, size, 0)
    return bytes(data.buffer)


def run(device: str):
    tcti = tcti_for_device(device)
    logger.info(f"Connecting to TPM via '{tcti}'")

    with ESAPI(tcti) as esapi:
        if device == DEVICE_SIMULATOR:
            startup_simulator(esapi)

        print(f"Reading NVIndex {NV_INDEX}.")
        data = read_nv(esapi)
        print(f"Read Bytes: {format_bytes(data)}")


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    if argv is None:
        argv = sys.argv[1:]

    device = parse_arguments(argv)
    if device is None:
        print(usage())
        return 0

    try:
        run(device)
    except Exception as e:
        logger.error(f"Exception occurred: {e}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
