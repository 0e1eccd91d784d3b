"""openai 命令行工具的调用封装。

参数一律以列表形式传给 subprocess.run（不经过 shell），
每次执行都有 cli_timeout 上限，超时后子进程会被终止。
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import List, Optional

from chat_service.config.settings import settings
from chat_service.domain.exceptions import ProcessError
from chat_service.infrastructure.logging.logger import logger

from .config import FineTuneCreateRequest


def build_create_args(request: FineTuneCreateRequest, cli: str = "openai") -> List[str]:
    args = [cli, "api", "fine_tunes.create", "-t", request.training_file, "-m", request.model]
    if request.suffix:
        args += ["--suffix", request.suffix]
    if request.n_epochs:
        args += ["--n_epochs", str(request.n_epochs)]
    if request.batch_size:
        args += ["--batch_size", str(request.batch_size)]
    if request.learning_rate_multiplier:
        args += ["--learning_rate_multiplier", str(request.learning_rate_multiplier)]
    if request.compute_classification_metrics:
        args.append("--compute_classification_metrics")
    return args


def build_prepare_args(filename: str, cli: str = "openai") -> List[str]:
    return [cli, "tools", "fine_tunes.prepare_data", "-f", filename, "-q"]


def _cli_env(cfg) -> dict:
    env = dict(os.environ)
    if cfg.openai_api_key:
        env["OPENAI_API_KEY"] = cfg.openai_api_key
    if cfg.openai_api_base_url:
        env["OPENAI_API_BASE"] = f"{cfg.openai_api_base_url.rstrip('/')}/v1"
    return env


def run_cli(args: List[str], *, cwd: Optional[Path] = None, cfg=None) -> subprocess.CompletedProcess:
    """执行 CLI，非零退出、超时或找不到命令时抛 ProcessError。"""

    cfg = cfg or settings
    logger.info("cli.run", extra={"extra": {"command": " ".join(args[1:3]), "cwd": str(cwd) if cwd else None}})
    try:
        completed = subprocess.run(
            args,
            cwd=cwd,
            env=_cli_env(cfg),
            capture_output=True,
            text=True,
            timeout=cfg.cli_timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.error("cli.timeout", extra={"extra": {"command": " ".join(args[1:3]), "timeout": cfg.cli_timeout}})
        raise ProcessError(f"Command timed out after {cfg.cli_timeout}s: {' '.join(args)}", code="CLI_TIMEOUT")
    except OSError as e:
        raise ProcessError(f"Command could not be started: {e}", code="CLI_NOT_FOUND")

    if completed.returncode != 0:
        stderr = (completed.stderr or completed.stdout or "").strip()
        logger.error(
            "cli.failed",
            extra={"extra": {"command": " ".join(args[1:3]), "returncode": completed.returncode, "stderr": stderr[:500]}},
        )
        raise ProcessError(
            f"Command failed: {' '.join(args)}\n{stderr}".rstrip(),
            returncode=completed.returncode,
            stderr=stderr,
        )
    return completed
