"""Resumable per-segment storage under the staging directory."""

import contextlib
import os
import shutil
from typing import List, Optional

from .errors import FilesystemError
from .models import PLAYLIST_FILE_NAME, STAGED_SEGMENT_SUFFIX, staged_segment_name

PARTIAL_SUFFIX = ".part"


def staging_dir_for(target_dir: str, output_name: str) -> str:
    """``<target-dir>/.<output-name>``, stable across invocations."""
    return os.path.join(target_dir, "." + output_name)


class StagingStore:
    """One file per ordinal; a file that exists is complete."""

    def __init__(self, target_dir: str, output_name: str) -> None:
        self.target_dir = target_dir
        self.output_name = output_name
        self.directory = staging_dir_for(target_dir, output_name)

    @property
    def playlist_path(self) -> str:
        return os.path.join(self.directory, PLAYLIST_FILE_NAME)

    @property
    def partial_artifact_path(self) -> str:
        # Dot prefix keeps it apart from digit-named segments and the playlist.
        return os.path.join(self.directory, "." + self.output_name + PARTIAL_SUFFIX)

    @property
    def final_artifact_path(self) -> str:
        return os.path.join(self.target_dir, self.output_name)

    def path_for(self, ordinal: int) -> str:
        return os.path.join(self.directory, staged_segment_name(ordinal))

    def prepare(self, force: bool = False) -> None:
        """Create the directory, clearing it first in force mode.

        A leftover merge output from an interrupted run is always removed.
        """
        try:
            if force and os.path.isdir(self.directory):
                shutil.rmtree(self.directory)
            os.makedirs(self.directory, exist_ok=True)
            if os.path.exists(self.partial_artifact_path):
                os.remove(self.partial_artifact_path)
        except OSError as exc:
            raise FilesystemError(f"Cannot prepare staging directory {self.directory}: {exc}") from exc

    def exists(self, ordinal: int) -> bool:
        return os.path.isfile(self.path_for(ordinal))

    def write(self, ordinal: int, data: bytes) -> str:
        """Persist *data* for *ordinal* atomically and return its path."""
        path = self.path_for(ordinal)
        temp_path = path + PARTIAL_SUFFIX
        try:
            with open(temp_path, "wb") as handle:
                handle.write(data)
            os.replace(temp_path, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                os.remove(temp_path)
            raise FilesystemError(f"Cannot write staged segment {path}: {exc}") from exc
        return path

    def staged_names(self) -> List[str]:
        """Staged segment file names in ordinal order."""
        try:
            entries = os.listdir(self.directory)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise FilesystemError(f"Cannot list staging directory {self.directory}: {exc}") from exc
        return sorted(
            name for name in entries
            if name.endswith(STAGED_SEGMENT_SUFFIX) and name[: -len(STAGED_SEGMENT_SUFFIX)].isdigit()
        )

    def count_staged(self) -> int:
        return len(self.staged_names())

    def read_playlist(self) -> Optional[str]:
        try:
            with open(self.playlist_path, "r", encoding="utf-8") as handle:
                return handle.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise FilesystemError(f"Cannot read cached playlist {self.playlist_path}: {exc}") from exc

    def write_playlist(self, text: str) -> None:
        temp_path = self.playlist_path + PARTIAL_SUFFIX
        try:
            with open(temp_path, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(temp_path, self.playlist_path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                os.remove(temp_path)
            raise FilesystemError(f"Cannot write playlist {self.playlist_path}: {exc}") from exc

    def remove(self) -> None:
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise FilesystemError(f"Cannot remove staging directory {self.directory}: {exc}") from exc
