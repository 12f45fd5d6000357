"""Concatenation of staged segments into the final artifact."""

import os
import shutil
from typing import List, Optional

from .errors import FilesystemError, IncompletePlanError
from .logger import ProgressSink
from .models import DownloadPlan, PipelineState, ProgressEvent
from .staging import StagingStore

COPY_CHUNK_SIZE = 1024 * 1024


class Assembler:
    """Joins staged segments in ordinal order and publishes the result."""

    def __init__(self, staging: StagingStore, sink: Optional[ProgressSink] = None) -> None:
        self.staging = staging
        self.sink = sink or ProgressSink()

    def ordered_files(self, plan: DownloadPlan) -> List[str]:
        """Staged file paths for *plan*, in ordinal order.

        Raises IncompletePlanError when any planned ordinal is missing.
        """
        paths = [self.staging.path_for(segment.ordinal) for segment in plan]
        staged = [path for path in paths if os.path.isfile(path)]
        if len(staged) != len(paths):
            raise IncompletePlanError(len(staged), len(paths))
        return staged

    def assemble(self, plan: DownloadPlan) -> str:
        """Write the artifact and remove the staging directory.

        Returns the path of the final artifact.
        """
        files = self.ordered_files(plan)
        partial_path = self.staging.partial_artifact_path
        final_path = self.staging.final_artifact_path
        phase = PipelineState.ASSEMBLING.value

        try:
            if os.path.exists(partial_path):
                os.remove(partial_path)
            with open(partial_path, "ab") as output:
                for index, path in enumerate(files, start=1):
                    self.sink.emit(ProgressEvent(phase, index / len(files), os.path.basename(path)))
                    with open(path, "rb") as segment:
                        shutil.copyfileobj(segment, output, COPY_CHUNK_SIZE)
            os.replace(partial_path, final_path)
        except OSError as exc:
            raise FilesystemError(f"Cannot assemble {final_path}: {exc}") from exc

        self.staging.remove()
        return final_path
