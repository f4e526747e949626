import asyncio

import httpx

from task_messenger.shared.utils.http_client import HTTPClientManager


def test_client_is_lazy_and_reusable():
    async def test_logic():
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"path": request.url.path}))
        manager = HTTPClientManager(base_url="https://api.test/", transport=transport)
        assert manager.is_active() is False

        client = manager.get_client()
        assert manager.get_client() is client
        response = await client.get("/ping")
        assert response.json() == {"path": "/ping"}
        assert manager.get_status()["config"]["base_url"] == "https://api.test"

        await manager.close()
        assert manager.is_active() is False

    asyncio.run(test_logic())


def test_connect_timeout_never_exceeds_total():
    manager = HTTPClientManager(timeout=5.0, connect_timeout=10.0)
    assert manager.get_status()["config"]["connect_timeout"] == 5.0


def test_default_headers_apply_to_every_request():
    seen = []

    def handler(request):
        seen.append(request.headers)
        return httpx.Response(200)

    async def test_logic():
        manager = HTTPClientManager(
            base_url="https://api.test",
            headers={"Accept": "application/json"},
            transport=httpx.MockTransport(handler)
        )
        await manager.get_client().get("/a")
        await manager.get_client().get("/b", headers={"X-Extra": "1"})
        await manager.close()

        assert [h["Accept"] for h in seen] == ["application/json", "application/json"]
        assert seen[1]["X-Extra"] == "1"

    asyncio.run(test_logic())
