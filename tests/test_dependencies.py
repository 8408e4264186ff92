"""Request context and logging adapter tests."""

import logging

import pytest
from httpx import AsyncClient

from linkly.dependencies import RequestLoggerAdapter


def test_adapter_keeps_call_extras(caplog: pytest.LogCaptureFixture) -> None:
    adapter = RequestLoggerAdapter(
        logging.getLogger("linkly.tests.request"),
        {"request_id": "req-1", "client_ip": "10.0.0.1", "user_agent": None},
    )

    with caplog.at_level(logging.INFO, logger="linkly.tests.request"):
        adapter.info("served", extra={"duration_ms": 12.5})

    record = caplog.records[-1]
    assert record.getMessage() == "[req-1] served"
    assert record.duration_ms == 12.5
    assert record.request_id == "req-1"
    assert record.client_ip == "10.0.0.1"


@pytest.mark.asyncio
async def test_request_logs_carry_id_and_duration(client: AsyncClient, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="linkly"):
        response = await client.post(
            "/shorten",
            json={"url": "https://www.example.com"},
            headers={"x-request-id": "trace-42"},
        )
    assert response.status_code == 201

    served = [record for record in caplog.records if record.getMessage().startswith("[trace-42] Shorten request served")]
    assert len(served) == 1
    assert served[0].duration_ms >= 0
    assert served[0].request_id == "trace-42"
