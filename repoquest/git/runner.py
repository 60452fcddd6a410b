"""
Single entry point for invoking git.

run_git never raises: timeouts and a missing binary come back as failed
GitResults, and GitRepo decides what a failure means. git runs with a fixed
locale so classify_failure can match its messages, and with terminal prompts
disabled so a fetch or push needing credentials fails instead of hanging.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# fetch, pull and push talk to the network
NETWORK_TIMEOUT = 60

GIT_ENV = {
    "LC_ALL": "C",
    "GIT_TERMINAL_PROMPT": "0",
}


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @classmethod
    def failed(cls, stderr: str, timed_out: bool = False) -> "GitResult":
        return cls(returncode=-1, stdout="", stderr=stderr, timed_out=timed_out)


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    env.update(GIT_ENV)
    return env


def run_git(args: list[str], cwd: Path, timeout: int = DEFAULT_TIMEOUT) -> GitResult:
    """
    Run `git -C cwd <args>`.

    Args:
        args: git arguments, e.g. ["rev-parse", "HEAD"]
        cwd: Repository directory
        timeout: Seconds before the command is abandoned
    """
    cmd = ["git", "-C", str(cwd)] + args
    logger.debug(f"[GIT] {' '.join(args)}")
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, env=_git_env())
    except subprocess.TimeoutExpired:
        logger.warning(f"[GIT] '{args[0]}' timed out after {timeout}s in {cwd}")
        return GitResult.failed(f"Command timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        return GitResult.failed("git executable not found")
    return GitResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
