from __future__ import annotations

import httpx
import pytest

from channel_monitoring.errors import ReconcileError
from channel_monitoring.reconcile import RemoteManagedReconciler


def _stored_channel(channel_id: int) -> dict:
    return {
        "id": channel_id,
        "type": 1,
        "key": "sk-remote",
        "status": 1,
        "name": "remote",
        "weight": 0,
        "base_url": "https://api.example.com",
        "models": "gpt-a,gpt-b,gpt-4",
        "group": "default",
        "model_mapping": '{"gpt-4": "gpt-4-alias"}',
        "priority": 5,
        "plugin": {"x": 1},
        "unknown_future_field": "kept",
    }


@pytest.mark.asyncio
async def test_read_modify_write_keeps_other_fields(gateway) -> None:
    gateway.channels[12] = _stored_channel(12)

    async with httpx.AsyncClient() as client:
        reconciler = RemoteManagedReconciler(client, gateway.base_url + "/", "sys-token")
        written = await reconciler.reconcile(12, ["gpt-4-alias", "gpt-a"], {"gpt-4": "gpt-4-alias"})

    assert written == ["gpt-4", "gpt-a"]
    assert [(m, p, a) for m, p, a, _ in gateway.requests] == [
        ("GET", "/api/channel/12", "sys-token"),
        ("PUT", "/api/channel/", "sys-token"),
    ]
    expected = _stored_channel(12)
    expected["models"] = "gpt-4,gpt-a"
    assert gateway.put_bodies == [expected]


@pytest.mark.asyncio
@pytest.mark.parametrize(("get_status", "put_status"), [(500, 200), (200, 403)])
async def test_non_200_is_a_hard_error(gateway, get_status: int, put_status: int) -> None:
    gateway.channels[12] = _stored_channel(12)
    gateway.get_channel_status = get_status
    gateway.put_channel_status = put_status

    async with httpx.AsyncClient() as client:
        with pytest.raises(ReconcileError) as excinfo:
            await RemoteManagedReconciler(client, gateway.base_url, "sys-token").reconcile(12, ["gpt-a"], {})
    assert excinfo.value.channel_id == 12
    if get_status != 200:
        assert gateway.put_bodies == []


@pytest.mark.asyncio
async def test_unsuccessful_lookup_is_not_written_back(gateway) -> None:
    async with httpx.AsyncClient() as client:
        with pytest.raises(ReconcileError):
            await RemoteManagedReconciler(client, gateway.base_url, "sys-token").reconcile(404, ["gpt-a"], {})
    assert gateway.put_bodies == []


@pytest.mark.asyncio
async def test_unreachable_management_api(unused_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        with pytest.raises(ReconcileError):
            await RemoteManagedReconciler(client, unused_base_url, "sys-token").reconcile(1, ["gpt-a"], {})
