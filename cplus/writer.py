import os
import logging
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class WriteReport:
    written: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed


class ArtifactWriter:
    """
    Writes generated artifacts into an output directory.

    Files are written in groups (the header and source of one class form a
    group).  Every file of a group is first written to a temporary file in
    the target directory, then all of them are renamed over their
    destinations, so a reader never sees a half-written artifact.  If any
    step fails, the group's temporary files and the files it already renamed
    into place are removed and the whole group is recorded as failed; the
    other groups are still written.  Files not named in any group form a
    group of their own.
    """

    def __init__(self, output_dir: str = "."):
        self.output_dir = output_dir

    def write_all(self, files: Dict[str, str], dry_run: bool = False,
                  groups: Optional[List[List[str]]] = None) -> WriteReport:
        report = WriteReport(dry_run=dry_run)
        if dry_run:
            for name in files:
                path = os.path.join(self.output_dir, name)
                logger.info("[Dry Run] Would write %s", path)
                report.written.append(path)
            return report

        os.makedirs(self.output_dir, exist_ok=True)
        for group in self._groups(files, groups or []):
            self._write_group(group, files, report)
        return report

    @staticmethod
    def _groups(files: Dict[str, str], groups: List[List[str]]) -> List[List[str]]:
        out = [[name for name in group if name in files] for group in groups]
        grouped = {name for group in out for name in group}
        out.extend([name] for name in files if name not in grouped)
        return [group for group in out if group]

    def _write_group(self, names: List[str], files: Dict[str, str], report: WriteReport) -> None:
        paths = [os.path.join(self.output_dir, name) for name in names]
        staged: List[str] = []
        replaced: List[str] = []
        try:
            for name, path in zip(names, paths):
                staged.append(self._stage(path, files[name]))
            for tmp_path, path in zip(staged, paths):
                os.replace(tmp_path, path)
                replaced.append(path)
        except OSError as e:
            for tmp_path in staged:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
            for path in replaced:
                os.unlink(path)
            for path in paths:
                logger.error("Failed to write %s: %s", path, e)
                report.failed[path] = str(e)
            return

        for name, path in zip(names, paths):
            report.written.append(path)
            logger.info("Wrote %s (%d bytes)", path, len(files[name]))

    def _stage(self, path: str, content: str) -> str:
        """Write ``content`` to a temporary file beside ``path``; returns its path."""
        directory = os.path.dirname(path) or "."
        fd, tmp_path = tempfile.mkstemp(
            dir=directory, prefix="." + os.path.basename(path) + ".", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
        except BaseException:
            os.unlink(tmp_path)
            raise
        return tmp_path
