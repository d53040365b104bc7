from __future__ import annotations

import logging
import mimetypes
import os
import stat
from pathlib import Path, PurePosixPath

from rangeserve.core.errors import ForbiddenResourceError, ResourceNotFoundError
from rangeserve.models import Resource
from rangeserve.services.validator_cache import compute_validator


class ResourceLocator:
    """
    Maps request identifiers onto regular files under a root directory.

    Guarantees:
    - Rejects identifiers that could escape the root before touching the filesystem
    - Re-checks the resolved path so symlinks cannot point outside the root
    - Returns metadata only; opening the file is left to the streamer
    """

    def __init__(self, root: str | Path, *, default_content_type: str = "application/octet-stream"):
        self.root = Path(root).resolve()
        self.default_content_type = default_content_type
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def resolve(self, identifier: str) -> Resource:
        rel = self._check_identifier(identifier)

        target = (self.root / rel).resolve()
        if not target.is_relative_to(self.root):
            raise ForbiddenResourceError("identifier escapes the resource root")

        try:
            st = target.stat()
        except OSError:
            raise ResourceNotFoundError("not found") from None
        if not stat.S_ISREG(st.st_mode) or not os.access(target, os.R_OK):
            raise ResourceNotFoundError("not found")

        content_type = mimetypes.guess_type(target.name)[0] or self.default_content_type
        return Resource(
            identifier=rel.as_posix(),
            path=target,
            total_length=st.st_size,
            last_modified_ns=st.st_mtime_ns,
            content_type=content_type,
            validator=compute_validator(st.st_size, st.st_mtime_ns),
        )

    def _check_identifier(self, identifier: str) -> PurePosixPath:
        if not identifier:
            raise ResourceNotFoundError("not found")
        if "\x00" in identifier or "\\" in identifier:
            raise ForbiddenResourceError("identifier contains forbidden characters")

        rel = PurePosixPath(identifier)
        if rel.is_absolute() or ".." in rel.parts:
            raise ForbiddenResourceError("identifier escapes the resource root")
        return rel
