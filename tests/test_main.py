import asyncio
import json

import httpx

from task_messenger.main import build_orchestrator, main, serve
from task_messenger.modules.crm.client import InMemoryCRMClient
from task_messenger.modules.whatsapp_dispatch.schemas import BatchStats


def ok_transport():
    return httpx.MockTransport(lambda request: httpx.Response(200, json={"id": "msg-1"}))


def test_serve_returns_stats_and_closes_client(make_settings, mapping_file, contact_task):
    settings = make_settings(XLSX_MAPPING_PATH=str(mapping_file))

    async def test_logic():
        crm = InMemoryCRMClient([contact_task])
        orchestrator = build_orchestrator(crm, settings, transport=ok_transport())
        stats = await serve(crm, settings, orchestrator)

        assert stats.sent == 1
        assert orchestrator.client.get_status()["http"]["active"] is False

    asyncio.run(test_logic())


def test_shutdown_lets_in_flight_work_finish_within_grace(make_settings):
    settings = make_settings(SHUTDOWN_GRACE_SECONDS=5)

    async def test_logic():
        crm = InMemoryCRMClient([])
        orchestrator = build_orchestrator(crm, settings, transport=ok_transport())

        async def slow_run():
            await asyncio.sleep(0.1)
            return BatchStats(total=1, skipped=1)

        orchestrator.run_once = slow_run
        asyncio.get_running_loop().call_later(0.01, orchestrator.request_shutdown)

        stats = await serve(crm, settings, orchestrator)
        assert stats.total == 1
        assert orchestrator.shutdown_requested

    asyncio.run(test_logic())


def test_shutdown_cancels_work_after_grace_window(make_settings):
    settings = make_settings(SHUTDOWN_GRACE_SECONDS=0.05)
    cancelled = []

    async def test_logic():
        crm = InMemoryCRMClient([])
        orchestrator = build_orchestrator(crm, settings, transport=ok_transport())

        async def stuck_run():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        orchestrator.run_once = stuck_run
        asyncio.get_running_loop().call_later(0.01, orchestrator.request_shutdown)

        assert await serve(crm, settings, orchestrator) is None

    asyncio.run(test_logic())
    assert cancelled == [True]


def test_main_dry_run_prints_stats(tmp_path, monkeypatch, capsys, mapping_file, contact_task):
    tasks_path = tmp_path / "tasks.json"
    tasks_path.write_text(json.dumps([contact_task]), encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DRY_RUN", "true")
    monkeypatch.setenv("XLSX_MAPPING_PATH", str(mapping_file))
    monkeypatch.setenv("GLASSIX_API_KEY", "secret-token")

    assert main([str(tasks_path)]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["total"] == 1
    assert output["previewed"] == 1
    assert output["errors"] == []


def test_main_without_arguments_prints_usage(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    assert main([]) == 2
    assert "Usage" in capsys.readouterr().out
