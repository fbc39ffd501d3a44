# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Atomic file output for the filename-based save helpers.

Saving a matrix or a model can take a while and can fail halfway (the
source iterable raises, the disk fills up). Writing straight to the target
would leave a truncated file that the loader would later reject, or worse,
accept with fewer rows.

So we write to a temp file in the target's directory and rename it into
place only once everything went through. Rename on the same filesystem is
atomic on POSIX. If anything fails, the temp file is removed and the
target is never touched.
"""

import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO


@contextmanager
def atomic_binary_file(target_path: Path) -> Iterator[BinaryIO]:
    """
    Yield a binary file object whose content replaces `target_path` on success.

    Raises:
        OSError: If creating, writing or renaming the temp file fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # delete=False because the file has to survive closing so we can rename it.
    temp_fd = tempfile.NamedTemporaryFile(
        mode="wb",
        dir=str(target_path.parent),
        prefix=".linearstream_tmp_",
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_fd.name)

    try:
        yield temp_fd
        temp_fd.flush()
        temp_fd.close()
        temp_path.replace(target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise
