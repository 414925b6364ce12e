"""Writes triggering payloads to disk for manual replay."""

from pathlib import Path
from typing import Union

from desync_scanner.core.exceptions import ExportError
from desync_scanner.utils.helpers import sanitize_hostname
from desync_scanner.utils.logging import get_logger

logger = get_logger(__name__)


def build_export_stem(scheme: str, host: str, check_type: str, index: int) -> str:
    """File stem for an exported payload.

    The check type is kept verbatim, so ``("https", "target.com", "CL.TE", 0)``
    gives ``https_target_com_CL.TE_0``.
    """
    return f"{scheme}_{sanitize_hostname(host)}_{check_type}_{index}"


class PayloadExporter:
    """Stores raw payload bytes as ``{stem}.txt`` under one directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def export(self, raw: bytes, stem: str) -> Path:
        """Write ``raw`` unchanged and return the file path.

        Raises:
            ExportError: If the directory or file cannot be written
        """
        path = self.directory / f"{stem}.txt"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(raw)
        except OSError as e:
            raise ExportError(str(path), str(e))

        logger.info("payload.exported", path=str(path), size=len(raw))
        return path
