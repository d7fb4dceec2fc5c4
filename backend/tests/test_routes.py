"""
QC: Control endpoint tests.

Drives the FastAPI app through TestClient with every external
collaborator faked. No ffmpeg, ffprobe or trash access.
"""

import base64

import pytest
import uvicorn
from fastapi.testclient import TestClient

from reelqueue import main as app_module
from reelqueue.main import create_app

from fakes import FakeAnalyzer, FakeClock, FakeDeleteService, FakeRunner, MemorySink


class Harness:
    """App plus handles on its fakes."""

    def __init__(self, settings, fail_on=()):
        self.clock = FakeClock()
        self.analyzer = FakeAnalyzer(default_duration=100.0, broken=["/v/broken.mov"])
        self.runner = FakeRunner(fail_on=fail_on)
        self.delete_service = FakeDeleteService()
        self.sink = MemorySink()
        self.app = create_app(
            settings=settings,
            analyzer=self.analyzer,
            runner=self.runner,
            channel=self.runner.channel,
            delete_service=self.delete_service,
            chunk_sink=self.sink,
            clock=self.clock,
        )
        self.client = TestClient(self.app)

    def import_files(self, *paths, is_temp=False):
        response = self.client.post("/control/files/import", json={"paths": list(paths), "is_temp": is_temp})
        assert response.status_code == 200
        return response.json()

    def compile(self, recipe="convert", **params):
        return self.client.post("/control/jobs/compile", json={"recipe": recipe, "params": params})


@pytest.fixture
def harness(settings):
    return Harness(settings)


def test_root(harness):
    assert harness.client.get("/").json() == {"service": "reelqueue-backend", "status": "running"}


class TestFileEndpoints:
    """Import, upload and listing."""

    def test_import_and_list(self, harness):
        imported = harness.import_files("/v/a.mov", "/v/broken.mov")

        assert [f["status"] for f in imported] == ["waiting", "error"]
        assert imported[0]["duration"] == 100.0
        assert "Unreadable media" in imported[1]["failure_reason"]
        assert harness.client.get("/control/files").json() == imported

    def test_empty_import_rejected(self, harness):
        response = harness.client.post("/control/files/import", json={"paths": []})
        assert response.status_code == 400

    def test_unknown_fields_rejected(self, harness):
        response = harness.client.post("/control/files/import", json={"paths": ["/v/a.mov"], "bogus": 1})
        assert response.status_code == 422

    def test_upload_chunks(self, harness):
        first = base64.b64encode(b"abc").decode("ascii")
        second = base64.b64encode(b"def").decode("ascii")

        r1 = harness.client.post(
            "/control/files/upload", json={"file_name": "clip.mov", "data_base64": first, "offset": 0}
        )
        r2 = harness.client.post(
            "/control/files/upload", json={"file_name": "clip.mov", "data_base64": second, "offset": 3}
        )

        assert r1.json() == {"path": "/imports/clip.mov"}
        assert r2.json() == {"path": "/imports/clip.mov"}
        assert bytes(harness.sink.files["clip.mov"]) == b"abcdef"

    def test_failed_upload_is_400(self, settings):
        harness = Harness(settings)
        harness.sink.fail_names.add("bad.mov")

        response = harness.client.post(
            "/control/files/upload", json={"file_name": "bad.mov", "data_base64": "", "offset": 0}
        )
        assert response.status_code == 400


class TestDeleteEndpoints:
    """Staged deletion of source files."""

    def test_request_then_confirm(self, harness):
        regular = harness.import_files("/v/a.mov")[0]
        temp = harness.import_files("/v/upload.mov", is_temp=True)[0]

        staged = harness.client.post(
            "/control/files/delete/request", json={"ids": [regular["id"], temp["id"]]}
        ).json()

        assert staged["delisted"] == [regular["id"]]
        assert [t["item_id"] for t in staged["tickets"]] == [temp["id"]]
        assert harness.delete_service.confirmed == []

        report = harness.client.post("/control/files/delete/confirm").json()

        assert report == {"confirmed": [temp["id"]], "failures": []}
        assert harness.delete_service.confirmed == ["/v/upload.mov"]
        assert harness.client.get("/control/files").json() == []
        assert "Moved to trash: /v/upload.mov" in harness.client.get("/control/log").json()["lines"]

    def test_cancel_keeps_file(self, harness):
        temp = harness.import_files("/v/upload.mov", is_temp=True)[0]
        harness.client.post("/control/files/delete/request", json={"ids": [temp["id"]]})

        response = harness.client.post("/control/files/delete/cancel").json()

        assert response["success"]
        assert harness.delete_service.cancelled == ["/v/upload.mov"]
        assert [f["id"] for f in harness.client.get("/control/files").json()] == [temp["id"]]

    def test_second_request_while_pending(self, harness):
        temp = harness.import_files("/v/upload.mov", "/v/other.mov", is_temp=True)
        harness.client.post("/control/files/delete/request", json={"ids": [temp[0]["id"]]})

        response = harness.client.post("/control/files/delete/request", json={"ids": [temp[1]["id"]]})
        assert response.status_code == 409

    def test_unknown_id(self, harness):
        response = harness.client.post("/control/files/delete/request", json={"ids": ["nope"]})
        assert response.status_code == 404

    def test_confirm_without_pending(self, harness):
        assert harness.client.post("/control/files/delete/confirm").status_code == 409

    def test_delist_only_leaves_nothing_pending(self, harness):
        regular = harness.import_files("/v/a.mov")[0]
        harness.client.post("/control/files/delete/request", json={"ids": [regular["id"]]})

        assert harness.client.post("/control/files/delete/confirm").status_code == 409
        assert harness.delete_service.call_count == 0


class TestJobEndpoints:
    """Compile, run and cancel."""

    def test_recipes(self, harness):
        recipes = harness.client.get("/control/recipes").json()

        assert [r["id"] for r in recipes] == ["convert", "dual-timescale"]
        assert "target_duration" in recipes[1]["params_schema"]["properties"]

    def test_compile_requires_ready_files(self, harness):
        assert harness.compile().status_code == 400

    def test_compile_unknown_recipe(self, harness):
        harness.import_files("/v/a.mov")
        assert harness.compile("nope").status_code == 400

    def test_compile_bad_params(self, harness):
        harness.import_files("/v/a.mov")
        assert harness.compile("dual-timescale", target_duration=-5).status_code == 400

    def test_compile_skips_failed_files(self, harness):
        harness.import_files("/v/a.mov", "/v/broken.mov", "/v/b.mov")

        tasks = harness.compile(codec="av1").json()

        assert [t["kind"] for t in tasks] == ["convert", "convert"]
        assert [t["source_paths"] for t in tasks] == [["/v/a.mov"], ["/v/b.mov"]]
        assert harness.client.get("/control/tasks").json() == tasks

    def test_run_to_completion(self, harness):
        harness.import_files("/v/a.mov", "/v/b.mov")
        harness.compile()

        result = harness.client.post("/control/jobs/run").json()

        assert result["outcome"] == "completed"
        assert result["failed_task_id"] is None
        assert [t["status"] for t in result["tasks"]] == ["done", "done"]
        assert len(harness.runner.calls) == 2

        metrics = harness.client.get("/control/metrics").json()
        assert metrics["completed_count"] == 2
        assert metrics["global_progress"] == 100.0

        lines = harness.client.get("/control/log").json()["lines"]
        assert "Processing: a.mov" in lines
        assert "Done: b.mov" in lines

    def test_failed_run_aborts(self, settings):
        harness = Harness(settings, fail_on=[0])
        harness.import_files("/v/a.mov", "/v/b.mov")
        tasks = harness.compile().json()

        result = harness.client.post("/control/jobs/run").json()

        assert result["outcome"] == "aborted"
        assert result["failed_task_id"] == tasks[0]["id"]
        assert result["skipped_task_ids"] == [tasks[1]["id"]]
        assert [t["status"] for t in result["tasks"]] == ["error", "skipped"]

    def test_run_without_tasks(self, harness):
        assert harness.client.post("/control/jobs/run").status_code == 400

    def test_finished_list_is_not_rerun(self, harness):
        harness.import_files("/v/a.mov")
        harness.compile()
        harness.client.post("/control/jobs/run")

        assert harness.client.post("/control/jobs/run").status_code == 409

    def test_trash_phase_declined(self, harness):
        harness.import_files("/v/a.mov")
        harness.compile("dual-timescale", trash_original=True)

        result = harness.client.post("/control/jobs/run", json={"confirm_trash": False}).json()

        assert result["outcome"] == "completed"
        assert result["deleted_task_ids"] == []
        assert result["tasks"][-1]["kind"] == "trash"
        assert result["tasks"][-1]["status"] == "skipped"
        assert harness.delete_service.cancelled == ["/v/a.mov"]

    def test_trash_phase_confirmed(self, harness):
        harness.import_files("/v/a.mov")
        tasks = harness.compile("dual-timescale", trash_original=True).json()

        result = harness.client.post("/control/jobs/run", json={"confirm_trash": True}).json()

        assert result["deleted_task_ids"] == [tasks[-1]["id"]]
        assert result["tasks"][-1]["status"] == "done"
        assert harness.delete_service.confirmed == ["/v/a.mov"]

    def test_cancel_when_idle(self, harness):
        assert harness.client.post("/control/jobs/cancel").json() == {
            "success": False,
            "message": "No run is active",
        }


class TestReset:
    def test_reset_clears_everything(self, harness):
        harness.import_files("/v/a.mov")
        harness.compile()
        harness.client.post("/control/jobs/run")

        response = harness.client.post("/control/reset").json()

        assert response["success"]
        assert harness.client.get("/control/files").json() == []
        assert harness.client.get("/control/tasks").json() == []
        assert harness.client.get("/control/log").json() == {"lines": []}
        assert harness.client.get("/control/metrics").json()["total_count"] == 0

    def test_reset_releases_pending_deletion(self, harness):
        temp = harness.import_files("/v/upload.mov", is_temp=True)[0]
        harness.client.post("/control/files/delete/request", json={"ids": [temp["id"]]})

        harness.client.post("/control/reset")

        assert harness.delete_service.cancelled == ["/v/upload.mov"]
        assert harness.client.post("/control/files/delete/confirm").status_code == 409


def test_run_server_binds_loopback(monkeypatch):
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, host, port: calls.append((app, host, port)))

    app_module.run_server()

    assert calls == [(app_module.app, "127.0.0.1", 8085)]
