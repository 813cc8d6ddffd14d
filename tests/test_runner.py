import json

import pytest

from conftest import FakeSearchClient, MemoryStore, build_controller, make_page
from leadrun import runner
from leadrun.config import Settings
from leadrun.models.run import PageResult, RunInput
from leadrun.services.run import RunController


def _patch_controller(monkeypatch, pages_for, seen=None):
    client = FakeSearchClient(pages_for)

    def from_settings(run_input, settings):
        if seen is not None:
            seen["settings"] = settings
        return build_controller(run_input.model_dump(by_alias=True, exclude_none=True), client=client,
                                state_store=MemoryStore())

    monkeypatch.setattr(runner.RunController, "from_settings", staticmethod(from_settings))
    return client


def test_main_runs_inline_input(monkeypatch, capsys):
    client = _patch_controller(monkeypatch, lambda key, page: make_page(page, ["a", "b"], total_pages=1))
    code = runner.main(["--input-json", json.dumps({"companies": ["Acme"], "maxItems": 2})])
    assert code == 0
    out = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert out["status"] == "success"
    assert out["leftItems"] == 0
    assert client.searches == [("Acme", 1)]


def test_main_reads_input_file_and_reports_rate_limit(monkeypatch, tmp_path, capsys):
    _patch_controller(monkeypatch, lambda key, page: PageResult(page=page, status=503, error="No available resource"))
    path = tmp_path / "input.json"
    path.write_text(json.dumps({"companies": ["Acme"], "takePages": 1}), encoding="utf-8")
    code = runner.main([str(path)])
    assert code == 1
    out = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert out["status"] == "rate limited"
    assert out["exitCode"] == 1


def test_storage_dir_override(monkeypatch, tmp_path):
    seen = {}
    _patch_controller(monkeypatch, lambda key, page: make_page(page, ["a"], total_pages=1), seen)
    runner.main(["--input-json", '{"companies": ["Acme"], "maxItems": 1}', "--storage-dir", str(tmp_path)])
    assert seen["settings"].storage_dir == str(tmp_path)


def test_main_requires_input():
    with pytest.raises(SystemExit):
        runner.main([])


def test_run_id_scopes_dataset_file(tmp_path):
    run_input = RunInput.model_validate({"companies": ["Acme"]})
    pinned = RunController.from_settings(run_input, Settings(storage_dir=str(tmp_path), run_id="r9"))
    assert pinned.run_id == "r9"
    assert pinned.sink.path == str(tmp_path / "datasets" / "r9" / "profiles.jsonl")

    first = RunController.from_settings(run_input, Settings(storage_dir=str(tmp_path)))
    second = RunController.from_settings(run_input, Settings(storage_dir=str(tmp_path)))
    assert first.run_id != second.run_id
    assert first.sink.path != second.sink.path
