import json
import subprocess

import pytest

import chat_service.fine_tune.cli as cli
from chat_service.domain.exceptions import ApiError, ProcessError, ValidationError
from chat_service.domain.result import ResultType
from chat_service.fine_tune import (
    FineTuneCreateRequest,
    UploadedFile,
    cancel_model,
    create_model,
    delete_model,
    get_list,
    get_model_detail,
    get_models,
    prepare_data,
)
from chat_service.fine_tune.cli import build_create_args, build_prepare_args, run_cli
from chat_service.fine_tune.prepare import find_prepared_file, read_prepared_rows


class StubRest:
    def __init__(self, payload=None, error=None, configured=True):
        self.payload = payload
        self.error = error
        self.configured = configured
        self.calls = []

    def _respond(self, method, path):
        self.calls.append((method, path))
        if self.error is not None:
            raise self.error
        return self.payload

    def get_json(self, path, params=None):
        return self._respond("GET", path)

    def post_json(self, path, payload=None):
        return self._respond("POST", path)

    def delete_json(self, path):
        return self._respond("DELETE", path)

    def upload_file(self, path, purpose="fine-tune"):
        self.calls.append(("UPLOAD", path.name, purpose))
        if self.error is not None:
            raise self.error
        return {"id": "file-abc"}


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


# ---- 请求校验与命令行参数 ----


def test_build_create_args_minimal():
    request = FineTuneCreateRequest.from_body({"training_file": "file-1", "model": "curie"})

    assert build_create_args(request) == ["openai", "api", "fine_tunes.create", "-t", "file-1", "-m", "curie"]


def test_build_create_args_full():
    request = FineTuneCreateRequest.from_body(
        {
            "training_file": "file-1",
            "model": "davinci",
            "suffix": "faq",
            "n_epochs": 4,
            "batch_size": "8",
            "learning_rate_multiplier": 0.1,
            "compute_classification_metrics": True,
            "ignored": "value",
        }
    )

    assert build_create_args(request, cli="/usr/bin/openai") == [
        "/usr/bin/openai", "api", "fine_tunes.create",
        "-t", "file-1",
        "-m", "davinci",
        "--suffix", "faq",
        "--n_epochs", "4",
        "--batch_size", "8",
        "--learning_rate_multiplier", "0.1",
        "--compute_classification_metrics",
    ]


def test_falsy_advanced_params_are_omitted():
    request = FineTuneCreateRequest.from_body(
        {"training_file": "file-1", "model": "ada", "n_epochs": 0, "batch_size": "", "compute_classification_metrics": False}
    )

    args = build_create_args(request)

    assert "--n_epochs" not in args
    assert "--batch_size" not in args
    assert "--compute_classification_metrics" not in args


@pytest.mark.parametrize(
    "body",
    [
        {"model": "ada"},
        {"training_file": "file-1"},
        {"training_file": "--help", "model": "ada"},
        {"training_file": "file-1", "model": "ada", "suffix": "-x"},
        {"training_file": "file-1", "model": "ada", "n_epochs": -1},
        {"training_file": "file-1", "model": "ada", "batch_size": "many"},
        {"training_file": ["file-1"], "model": "ada"},
    ],
)
def test_invalid_create_body(body):
    with pytest.raises(ValidationError):
        FineTuneCreateRequest.from_body(body)


def test_build_prepare_args():
    assert build_prepare_args("data.jsonl") == ["openai", "tools", "fine_tunes.prepare_data", "-f", "data.jsonl", "-q"]


# ---- CLI 执行 ----


def test_run_cli_passes_argument_vector(monkeypatch, make_settings, tmp_path):
    captured = {}

    def fake_run(args, **kwargs):
        captured["args"] = args
        captured.update(kwargs)
        return _completed(stdout="ok")

    monkeypatch.setattr(cli.subprocess, "run", fake_run)
    cfg = make_settings(openai_api_key="sk-test", openai_api_base_url="https://api.example.com/")

    run_cli(["openai", "api", "fine_tunes.list"], cwd=tmp_path, cfg=cfg)

    assert captured["args"] == ["openai", "api", "fine_tunes.list"]
    assert captured["cwd"] == tmp_path
    assert captured["timeout"] == 5.0
    assert "shell" not in captured
    assert captured["env"]["OPENAI_API_KEY"] == "sk-test"
    assert captured["env"]["OPENAI_API_BASE"] == "https://api.example.com/v1"


def test_run_cli_nonzero_exit(monkeypatch, make_settings):
    monkeypatch.setattr(cli.subprocess, "run", lambda args, **kw: _completed(returncode=1, stderr="bad model"))

    with pytest.raises(ProcessError) as exc:
        run_cli(["openai", "api", "fine_tunes.create"], cfg=make_settings())

    assert exc.value.returncode == 1
    assert exc.value.stderr == "bad model"
    assert "bad model" in exc.value.message


def test_run_cli_timeout(monkeypatch, make_settings):
    def fake_run(args, **kwargs):
        raise subprocess.TimeoutExpired(args, kwargs["timeout"])

    monkeypatch.setattr(cli.subprocess, "run", fake_run)

    with pytest.raises(ProcessError) as exc:
        run_cli(["openai", "tools", "fine_tunes.prepare_data"], cfg=make_settings())

    assert exc.value.code == "CLI_TIMEOUT"


def test_run_cli_missing_executable(monkeypatch, make_settings):
    def fake_run(args, **kwargs):
        raise FileNotFoundError("openai")

    monkeypatch.setattr(cli.subprocess, "run", fake_run)

    with pytest.raises(ProcessError) as exc:
        run_cli(["openai", "api"], cfg=make_settings())

    assert exc.value.code == "CLI_NOT_FOUND"


def test_create_model(monkeypatch, make_settings):
    captured = {}

    def fake_run(args, **kwargs):
        captured["args"] = args
        return _completed()

    monkeypatch.setattr(cli.subprocess, "run", fake_run)

    result = create_model({"training_file": "file-1", "model": "curie", "suffix": "demo"}, cfg=make_settings())

    assert result.type == ResultType.SUCCESS
    assert result.message == "创建成功"
    assert result.data == {}
    assert captured["args"][-2:] == ["--suffix", "demo"]


def test_create_model_cli_failure(monkeypatch, make_settings):
    monkeypatch.setattr(cli.subprocess, "run", lambda args, **kw: _completed(returncode=2, stderr="error"))

    with pytest.raises(ProcessError):
        create_model({"training_file": "file-1", "model": "curie"}, cfg=make_settings())


# ---- 预处理 ----


def test_find_prepared_file_preference(tmp_path):
    for name in ("data.jsonl", "data_prepared.jsonl", "data_prepared_valid.jsonl", "data_prepared_train.jsonl"):
        (tmp_path / name).write_text("", encoding="utf-8")

    assert find_prepared_file(tmp_path, "data.jsonl") == "data_prepared_train.jsonl"


def test_find_prepared_file_fallbacks(tmp_path):
    (tmp_path / "data.csv").write_text("", encoding="utf-8")
    assert find_prepared_file(tmp_path, "data.csv") is None

    (tmp_path / "output.jsonl").write_text("", encoding="utf-8")
    assert find_prepared_file(tmp_path, "data.csv") == "output.jsonl"

    (tmp_path / "data_prepared.jsonl").write_text("", encoding="utf-8")
    assert find_prepared_file(tmp_path, "data.csv") == "data_prepared.jsonl"


def test_read_prepared_rows_limit_and_bad_lines(tmp_path):
    path = tmp_path / "rows.jsonl"
    lines = ["{broken"] + [json.dumps({"prompt": f"p{i}", "completion": f"c{i}"}) for i in range(150)]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    rows = read_prepared_rows(path)

    assert len(rows) == 100
    assert rows[0] == {"prompt": "p0", "completion": "c0"}
    assert rows[-1]["prompt"] == "p99"


def test_prepare_data_missing_file(make_settings, tmp_path):
    result = prepare_data(str(tmp_path / "req" / "missing.jsonl"), rest_client=StubRest(), cfg=make_settings(upload_root=str(tmp_path)))

    assert result.type == ResultType.FAIL
    assert result.message == "文件解析失败"
    assert result.data is None


def _upload(tmp_path):
    folder = tmp_path / "req-1"
    folder.mkdir()
    source = folder / "data.jsonl"
    source.write_text('{"prompt": "a", "completion": "b"}\n', encoding="utf-8")
    return folder, UploadedFile(str(source))


def test_prepare_data_full_pipeline(monkeypatch, make_settings, tmp_path):
    folder, upload = _upload(tmp_path)
    captured = {}

    def fake_run(args, **kwargs):
        captured["args"] = args
        captured["cwd"] = kwargs["cwd"]
        rows = [json.dumps({"prompt": "a ->", "completion": " b\n"}), "not json"]
        (kwargs["cwd"] / "data_prepared.jsonl").write_text("\n".join(rows), encoding="utf-8")
        return _completed()

    monkeypatch.setattr(cli.subprocess, "run", fake_run)
    rest = StubRest()

    result = prepare_data(upload, rest_client=rest, cfg=make_settings(upload_root=str(tmp_path)))

    assert result.type == ResultType.SUCCESS
    assert result.data == {"id": "file-abc", "list": [{"prompt": "a ->", "completion": " b\n"}]}
    assert captured["args"][-3:] == ["-f", "data.jsonl", "-q"]
    assert captured["cwd"] == folder.resolve()
    assert rest.calls == [("UPLOAD", "data_prepared.jsonl", "fine-tune")]
    assert not folder.exists()


def test_prepare_data_upload_failure_keeps_preview(monkeypatch, make_settings, tmp_path):
    folder, upload = _upload(tmp_path)

    def fake_run(args, **kwargs):
        (kwargs["cwd"] / "data_prepared_train.jsonl").write_text('{"prompt": "x"}\n', encoding="utf-8")
        return _completed()

    monkeypatch.setattr(cli.subprocess, "run", fake_run)
    rest = StubRest(error=ApiError(code="API_ERROR", message="boom", http_status=500))

    result = prepare_data(upload, rest_client=rest, cfg=make_settings(upload_root=str(tmp_path)))

    assert result.type == ResultType.SUCCESS
    assert result.data == {"id": "", "list": [{"prompt": "x"}]}
    assert not folder.exists()


def test_prepare_data_without_artifact(monkeypatch, make_settings, tmp_path):
    folder, upload = _upload(tmp_path)
    monkeypatch.setattr(cli.subprocess, "run", lambda args, **kw: _completed())

    result = prepare_data(upload, rest_client=StubRest(), cfg=make_settings(upload_root=str(tmp_path)))

    assert result.type == ResultType.SUCCESS
    assert result.data is None
    assert result.message == "文件解析失败"
    assert not folder.exists()


def test_prepare_data_cli_failure_still_cleans_up(monkeypatch, make_settings, tmp_path):
    folder, upload = _upload(tmp_path)
    monkeypatch.setattr(cli.subprocess, "run", lambda args, **kw: _completed(returncode=1, stderr="bad"))

    with pytest.raises(ProcessError):
        prepare_data(upload, rest_client=StubRest(), cfg=make_settings(upload_root=str(tmp_path)))

    assert not folder.exists()


def test_prepare_data_keeps_folder_outside_upload_root(monkeypatch, make_settings, tmp_path):
    folder, upload = _upload(tmp_path)
    monkeypatch.setattr(cli.subprocess, "run", lambda args, **kw: _completed())

    prepare_data(upload, rest_client=StubRest(), cfg=make_settings(upload_root=str(tmp_path / "elsewhere")))

    assert folder.exists()


def test_prepare_data_in_shared_upload_root(monkeypatch, make_settings, tmp_path):
    (tmp_path / "other_prepared.jsonl").write_text('{"prompt": "other"}\n', encoding="utf-8")
    source = tmp_path / "data.jsonl"
    source.write_text('{"prompt": "a", "completion": "b"}\n', encoding="utf-8")

    def fake_run(args, **kwargs):
        (kwargs["cwd"] / "data_prepared.jsonl").write_text('{"prompt": "mine"}\n', encoding="utf-8")
        return _completed()

    monkeypatch.setattr(cli.subprocess, "run", fake_run)
    rest = StubRest()

    result = prepare_data(str(source), rest_client=rest, cfg=make_settings(upload_root=str(tmp_path)))

    assert result.data == {"id": "file-abc", "list": [{"prompt": "mine"}]}
    assert rest.calls == [("UPLOAD", "data_prepared.jsonl", "fine-tune")]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["other_prepared.jsonl"]


def test_prepare_data_in_shared_upload_root_cli_failure(monkeypatch, make_settings, tmp_path):
    (tmp_path / "keep.jsonl").write_text("{}\n", encoding="utf-8")
    source = tmp_path / "data.jsonl"
    source.write_text("{}\n", encoding="utf-8")

    def fake_run(args, **kwargs):
        (kwargs["cwd"] / "data_prepared_train.jsonl").write_text("{}\n", encoding="utf-8")
        return _completed(returncode=1, stderr="bad")

    monkeypatch.setattr(cli.subprocess, "run", fake_run)

    with pytest.raises(ProcessError):
        prepare_data(str(source), rest_client=StubRest(), cfg=make_settings(upload_root=str(tmp_path)))

    assert sorted(p.name for p in tmp_path.iterdir()) == ["keep.jsonl"]


def test_find_prepared_file_ignores_existing_files(tmp_path):
    for name in ("data.jsonl", "old_train.jsonl", "data_prepared.jsonl"):
        (tmp_path / name).write_text("", encoding="utf-8")

    assert find_prepared_file(tmp_path, "data.jsonl", existing={"data.jsonl", "old_train.jsonl"}) == "data_prepared.jsonl"


# ---- REST 操作 ----


@pytest.mark.parametrize(
    "call",
    [
        lambda rest: get_models(rest),
        lambda rest: get_list(rest),
        lambda rest: get_model_detail("ft-1", rest),
        lambda rest: cancel_model("ft-1", rest),
        lambda rest: delete_model("curie:ft-1", rest),
    ],
)
def test_rest_ops_not_configured(call):
    rest = StubRest(configured=False)

    result = call(rest)

    assert result.type == ResultType.NOT_CONFIGURED
    assert rest.calls == []


def test_get_models_and_list(make_settings):
    rest = StubRest(payload={"object": "list", "data": [{"id": "curie"}]})

    assert get_models(rest).data == [{"id": "curie"}]
    assert get_list(rest).data == [{"id": "curie"}]
    assert rest.calls == [("GET", "/v1/models"), ("GET", "/v1/fine-tunes")]


def test_get_model_detail():
    rest = StubRest(payload={"data": [{"message": "Job started"}]})

    result = get_model_detail("ft-abc", rest)

    assert result.data == [{"message": "Job started"}]
    assert rest.calls == [("GET", "/v1/fine-tunes/ft-abc/events")]


def test_get_model_detail_rejects_unsafe_id():
    rest = StubRest(payload={"data": []})

    result = get_model_detail("../models", rest)

    assert result.type == ResultType.FAIL
    assert result.data == []
    assert rest.calls == []


def test_fetch_failure_returns_empty_list():
    rest = StubRest(error=ApiError(code="API_ERROR", message="boom", http_status=500))

    result = get_list(rest)

    assert result.type == ResultType.FAIL
    assert result.message == "获取失败"
    assert result.data == []


def test_cancel_and_delete():
    rest = StubRest(payload={"id": "ft-1", "status": "cancelled"})

    assert cancel_model("ft-1", rest).data["status"] == "cancelled"
    assert delete_model("curie:ft-acme-2023", rest).ok
    assert rest.calls == [("POST", "/v1/fine-tunes/ft-1/cancel"), ("DELETE", "/v1/models/curie:ft-acme-2023")]


def test_cancel_and_delete_failures():
    rest = StubRest(error=ApiError(code="API_ERROR", message="boom", http_status=404))

    cancelled = cancel_model("ft-1", rest)
    deleted = delete_model("curie:ft-1", rest)

    assert (cancelled.type, cancelled.message, cancelled.data) == (ResultType.FAIL, "取消失败", {})
    assert (deleted.type, deleted.message, deleted.data) == (ResultType.FAIL, "删除失败", {})
