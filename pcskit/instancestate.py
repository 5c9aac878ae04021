"""Saving and loading the resume state of a download."""

from __future__ import annotations

import json
import threading
from enum import IntEnum
from typing import IO, Optional

from .transfer import DownloadInstanceInfo, DownloadInstanceInfoExport, instance_export_from_dict
from .verbose import verbosef


class InstanceStateStorageFormat(IntEnum):
    """How resume state is stored on disk."""

    JSON = 0


class InstanceState:
    """Reads and writes resume state in an open binary file; a None file disables it."""

    def __init__(
        self,
        save_file: Optional[IO[bytes]],
        fmt: InstanceStateStorageFormat = InstanceStateStorageFormat.JSON,
    ) -> None:
        self.save_file = save_file
        self.format = InstanceStateStorageFormat(fmt)
        self._export: Optional[DownloadInstanceInfoExport] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[DownloadInstanceInfo]:
        """Load the saved state; None when there is none or it cannot be parsed."""
        if self.save_file is None:
            return None
        with self._lock:
            self.save_file.seek(0)
            contents = self.save_file.read()
            if not contents:
                return None
            try:
                self._export = instance_export_from_dict(json.loads(contents))
            except (ValueError, TypeError, AttributeError) as exc:
                verbosef("DEBUG: InstanceInfo unmarshal error: %s\n", exc)
                return None
            return self._export.get_instance_info()

    def put(self, info: DownloadInstanceInfo) -> None:
        """Save ``info``, replacing what the file held."""
        if self.save_file is None:
            return
        with self._lock:
            if self._export is None:
                self._export = DownloadInstanceInfoExport()
            self._export.set_instance_info(info)
            data = json.dumps(self._export.to_dict()).encode()
            try:
                self.save_file.truncate(len(data))
                self.save_file.seek(0)
                self.save_file.write(data)
                self.save_file.flush()
            except OSError as exc:
                verbosef("DEBUG: write instance state error: %s\n", exc)

    def close(self) -> None:
        """Close the file, if any."""
        if self.save_file is not None:
            self.save_file.close()

    def __enter__(self) -> "InstanceState":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()