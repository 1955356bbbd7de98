"""
Archive Helpers.

Zip handling shared by the pack builder, the panel section and the
listener loader:
- listing and extracting zip entries
- resolving short class names against the modules an archive contains

An "archive" holding Python modules may be a zip file or a plain directory.
"""

import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional, Tuple, Union

from install_compiler.core.exceptions import AmbiguousClassNameError, ArchiveReadError


logger = logging.getLogger(__name__)


MODULE_SUFFIX = ".py"


def list_entries(archive: Union[str, Path]) -> List[str]:
    """
    List the file entries of a zip file or directory.

    Directory entries are skipped; names use '/' separators.

    Raises:
        ArchiveReadError: If the archive cannot be read
    """
    archive = Path(archive)
    if archive.is_dir():
        entries = []
        for current, dirnames, filenames in os.walk(archive):
            dirnames.sort()
            for filename in sorted(filenames):
                entries.append((Path(current) / filename).relative_to(archive).as_posix())
        return entries

    try:
        with zipfile.ZipFile(archive) as zf:
            return [info.filename for info in zf.infolist() if not info.is_dir()]
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveReadError(f"Unable to read archive {archive}: {e}", {"archive": str(archive)})


def extract_entries(archive: Union[str, Path], workspace: Union[str, Path]) -> List[Tuple[str, Path]]:
    """
    Extract every non-directory entry of a zip file into its own temporary file.

    Args:
        archive: Zip file
        workspace: Directory receiving the extracted files

    Returns:
        (entry name, extracted file) pairs in archive order

    Raises:
        ArchiveReadError: If the archive is unreadable or an entry cannot be extracted
    """
    archive = Path(archive)
    workspace = Path(workspace)
    extracted: List[Tuple[str, Path]] = []

    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                fd, temp_name = tempfile.mkstemp(prefix="entry_", dir=workspace)
                with os.fdopen(fd, "wb") as out, zf.open(info) as entry:
                    while True:
                        chunk = entry.read(64 * 1024)
                        if not chunk:
                            break
                        out.write(chunk)
                extracted.append((info.filename, Path(temp_name)))
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveReadError(
            f"Couldn't extract archive {archive}: {e}",
            {"archive": str(archive)},
        )

    logger.debug(f"Extracted {len(extracted)} entries from {archive}")
    return extracted


def read_entry(archive: Union[str, Path], entry_name: str) -> bytes:
    """
    Read a single zip entry.

    Raises:
        ArchiveReadError: If the archive or the entry cannot be read
    """
    try:
        with zipfile.ZipFile(archive) as zf:
            return zf.read(entry_name)
    except KeyError:
        raise ArchiveReadError(
            f"Entry {entry_name} not found in {archive}",
            {"archive": str(archive), "entry": entry_name},
        )
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveReadError(
            f"Error reading {entry_name} in {archive}: {e}",
            {"archive": str(archive), "entry": entry_name},
        )


def module_names(archive: Union[str, Path]) -> List[str]:
    """Dotted names of the Python modules an archive contains."""
    names = []
    for entry in list_entries(archive):
        if not entry.endswith(MODULE_SUFFIX):
            continue
        name = entry[: -len(MODULE_SUFFIX)].replace("/", ".")
        if name.endswith("__init__"):
            continue
        names.append(name)
    return names


def resolve_class_name(archive: Union[str, Path], class_name: str) -> Optional[str]:
    """
    Resolve a short class name to the module path that defines it.

    A class lives in a module named after it, so `Foo` resolves to
    `pkg.sub.Foo` when the archive holds `pkg/sub/Foo.py`.

    Returns:
        The dotted module path, or None if no module matches

    Raises:
        AmbiguousClassNameError: If a module matches only case-insensitively
    """
    candidates = module_names(archive)

    for name in candidates:
        if name == class_name or name.endswith("." + class_name):
            return name

    lowered = class_name.lower()
    for name in candidates:
        folded = name.lower()
        if folded == lowered or folded.endswith("." + lowered):
            raise AmbiguousClassNameError(class_name, name)

    return None
