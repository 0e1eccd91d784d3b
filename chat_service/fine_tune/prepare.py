"""微调数据预处理流水线。

1. 在上传文件所在目录执行 `openai tools fine_tunes.prepare_data`。
2. 在目录中挑出生成的文件：优先含 train，其次含 prepared，最后取任一非源文件。
3. 上传该文件到 /v1/files（尽力而为，失败只返回空 ID）。
4. 逐行解析 JSON，最多返回 100 行预览，无法解析的行跳过。
5. 无论成功与否，最后都清理本次请求的文件：独占子目录整个删除，
   共享的 upload_root 中只删除源文件与本次生成的文件。
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, List, Optional, Set

from chat_service.config.settings import settings
from chat_service.domain.exceptions import BusinessError
from chat_service.domain.result import Result
from chat_service.infrastructure.logging.logger import logger
from chat_service.providers.openai_rest import OpenAIRestClient, create_rest_client

from .cli import build_prepare_args, run_cli
from .config import UploadedFile


MAX_PREVIEW_ROWS = 100
PARSE_FAILED_MESSAGE = "文件解析失败"


def find_prepared_file(
    folder: Path,
    filename: str,
    existing: Optional[Set[str]] = None,
) -> Optional[str]:
    """在 folder 中查找预处理生成的文件。

    排除源文件 filename；给出 existing 时只考虑执行 CLI 之后新出现的文件。
    """

    skip = set(existing or ()) | {filename}
    files = sorted(p.name for p in Path(folder).iterdir() if p.is_file() and p.name not in skip)
    for keyword in ("train", "prepared"):
        for name in files:
            if keyword in name:
                return name
    return files[0] if files else None


def read_prepared_rows(path: Path, limit: int = MAX_PREVIEW_ROWS) -> List[Any]:
    """逐行解析 JSON，凑够 limit 行后立即停止读取。"""

    rows: List[Any] = []
    if limit <= 0:
        return rows
    with Path(path).open("r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError:
                continue
            if len(rows) >= limit:
                break
    return rows


def upload_file(path: Path, rest_client: Optional[OpenAIRestClient] = None) -> str:
    """上传文件用于微调，返回文件 ID；未配置或失败时返回空串。"""

    client = rest_client or create_rest_client(settings)
    if not client.configured:
        return ""
    try:
        res = client.upload_file(path, purpose="fine-tune")
        return (res or {}).get("id") or ""
    except (BusinessError, OSError, ValueError, AttributeError) as e:
        logger.warning(f"Upload file failed: {e}", extra={"extra": {"file": Path(path).name}})
        return ""


def _snapshot(folder: Path) -> Optional[Set[str]]:
    try:
        return {p.name for p in folder.iterdir()}
    except OSError:
        return None


def _remove_run_files(folder: Path, filename: str, before: Optional[Set[str]]) -> List[str]:
    """共享上传目录下只删除源文件和本次 CLI 新生成的文件。"""

    names = {filename}
    if before is not None:
        names |= (_snapshot(folder) or set()) - before
    removed = []
    for name in sorted(names):
        path = folder / name
        if not path.exists() and not path.is_symlink():
            continue
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            logger.warning(f"Remove {name} failed: {e}", extra={"extra": {"folder": str(folder)}})
            continue
        removed.append(name)
    return removed


def _cleanup(folder: Path, filename: str, before: Optional[Set[str]], cfg) -> None:
    """清理本次请求的文件。

    upload_root 之下的子目录整个删除；上传直接落在 upload_root 时只删除本次请求的文件；
    upload_root 之外的目录不动。
    """

    root = Path(cfg.upload_root).expanduser().resolve()
    folder = folder.resolve()
    if root in folder.parents:
        shutil.rmtree(folder, ignore_errors=True)
        logger.info("prepare_data.cleanup", extra={"extra": {"folder": str(folder)}})
        return
    if folder == root:
        removed = _remove_run_files(folder, filename, before)
        logger.info("prepare_data.cleanup", extra={"extra": {"folder": str(folder), "files": removed}})
        return
    logger.warning("prepare_data.cleanup_skipped", extra={"extra": {"folder": str(folder)}})


def prepare_data(
    file: UploadedFile | str,
    rest_client: Optional[OpenAIRestClient] = None,
    cfg=None,
) -> Result:
    """预处理上传的原始数据，返回上传后的文件 ID 与前 100 行预览。

    CLI 执行失败时抛出 ProcessError；其余情况返回 Result。
    """

    cfg = cfg or settings
    upload = file if isinstance(file, UploadedFile) else UploadedFile(str(file))
    folder = upload.folder
    before = _snapshot(folder)
    try:
        if not upload.exists():
            return Result.fail(PARSE_FAILED_MESSAGE, data=None)

        run_cli(build_prepare_args(upload.filename, cfg.openai_cli), cwd=folder, cfg=cfg)

        prepared_name = find_prepared_file(folder, upload.filename, before)
        if not prepared_name:
            return Result.success(data=None, message=PARSE_FAILED_MESSAGE)

        prepared = folder / prepared_name
        file_id = upload_file(prepared, rest_client or create_rest_client(cfg))
        rows = read_prepared_rows(prepared)
        logger.info(
            "prepare_data.done",
            extra={"extra": {"file": prepared_name, "rows": len(rows), "uploaded": bool(file_id)}},
        )
        return Result.success({"id": file_id, "list": rows})
    finally:
        _cleanup(folder, upload.filename, before, cfg)
