"""Execution of per-worktree init actions with a durable log file."""

import logging
from collections.abc import Sequence
from pathlib import Path

from .events import ProgressReporter
from .models import InitActionsStatus, utcnow
from .utils import ProcessUtils

logger = logging.getLogger(__name__)

RULE_WIDTH = 80


def init_log_filename(worktree_name: str) -> str:
    return f"grove-init-{worktree_name}.log"


class InitActionRunner:
    """Runs init actions sequentially with ``bash -c``, stopping at the first failure.

    Every step is appended to ``<grove>/grove-init-<worktree>.log``; the file
    is only ever opened in append mode, so re-running actions for a worktree
    keeps the earlier runs.
    """

    def __init__(self, timeout: float | None = None):
        """Initialize the runner.

        Args:
            timeout: Seconds before an action is killed (None waits forever)
        """
        self.timeout = timeout

    async def run(self,
                  actions: Sequence[str],
                  grove_path: str | Path,
                  worktree_name: str,
                  worktree_path: str | Path,
                  project_path: str | None = None,
                  progress: ProgressReporter | None = None) -> InitActionsStatus:
        """Execute the actions and return their write-once status.

        Args:
            actions: Shell commands in execution order
            grove_path: Grove folder that receives the log file
            worktree_name: Worktree folder name, used in the log file name
            worktree_path: Worktree root
            project_path: Monorepo project; actions then run inside it
            progress: Optional progress reporter

        Returns:
            InitActionsStatus describing how far execution got
        """
        progress = progress or ProgressReporter()
        log_name = init_log_filename(worktree_name)
        log_path = Path(grove_path) / log_name
        working_dir = Path(worktree_path) / project_path if project_path else Path(worktree_path)
        executed_at = utcnow()
        total = len(actions)

        self._append(log_path,
                     "Grove InitActions Execution Log\n"
                     f"Executed at: {executed_at.isoformat()}\n"
                     f"Working directory: {working_dir}\n"
                     f"Total actions: {total}\n\n"
                     f"{'=' * RULE_WIDTH}\n\n")
        await progress.info(f"Starting initActions ({total} commands)...")

        successful = 0
        error_message = None

        for index, action in enumerate(actions, start=1):
            self._append(log_path, f"[Action {index}/{total}] {action}\n{'-' * RULE_WIDTH}\n")
            await progress.info(f"Running: {action}")

            result = await ProcessUtils.run_shell(action, cwd=working_dir, timeout=self.timeout)

            section = ""
            if result.stdout:
                section += f"STDOUT:\n{result.stdout}\n"
            if result.stderr:
                section += f"STDERR:\n{result.stderr}\n"
            section += f"Exit code: {result.exit_code}\n\n"
            self._append(log_path, section)

            if result.stdout.strip():
                await progress.info(result.stdout.strip())

            if not result.success:
                error_message = f"Action {index} failed with exit code {result.exit_code}: {action}"
                self._append(log_path, f"\n{'=' * RULE_WIDTH}\nEXECUTION STOPPED: {error_message}\n")
                await progress.warning(f"Failed with exit code {result.exit_code}")
                break

            successful += 1
            await progress.info("Command completed successfully")

        success = successful == total
        status_text = "SUCCESS" if success else "FAILED"
        await progress.info(f"{status_text}: {successful}/{total} actions completed")

        summary = (f"\n{'=' * RULE_WIDTH}\nEXECUTION SUMMARY\n{'=' * RULE_WIDTH}\n"
                   f"Total actions: {total}\n"
                   f"Successful: {successful}\n"
                   f"Status: {status_text}\n")
        if error_message:
            summary += f"Error: {error_message}\n"
        summary += f"Completed at: {utcnow().isoformat()}\n"
        self._append(log_path, summary)

        return InitActionsStatus(
            executed=True,
            success=success,
            executed_at=executed_at,
            log_file=log_name,
            total_actions=total,
            successful_actions=successful,
            error_message=error_message,
        )

    @staticmethod
    def _append(log_path: Path, text: str) -> None:
        try:
            with open(log_path, "a", encoding="utf-8") as handle:
                handle.write(text)
        except OSError as e:
            logger.warning(f"Could not write init log {log_path}: {e}")
