import asyncio
import json

import httpx
import pytest

from conftest import frames
from core.orchestrator import GenerationOrchestrator
from model.attachment import Attachment
from model.job import ExternalServiceCredentials, GenerationRequest
from repository.job_repository import JobRepository
from util.enums import GenerationScope, JobPhase
from util.errors import ClientError


async def wait_for(predicate, rounds: int = 500):
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never met")


def gated_body(gate: asyncio.Event, before: bytes, after: bytes = b""):
    async def body():
        yield before
        await gate.wait()
        if after:
            yield after

    return body()


def is_streaming(orch, key):
    job = orch.get(key)
    return job is not None and job.phase == JobPhase.STREAMING


@pytest.fixture
def calls():
    return []


@pytest.mark.anyio
async def test_frontend_generation_completes_with_result(make_transport, streaming, calls):
    body = frames(
        {"type": "progress", "phase": "plan", "percentage": 10, "message": "Planning"},
        {"type": "progress", "phase": "build", "percentage": 60, "message": "Building"},
        {"type": "complete", "message": "Done"},
        {"type": "result", "result": {"previewUrl": "https://x/42"}},
    )

    async def handler(request):
        calls.append(request)
        return streaming(body)

    orch = GenerationOrchestrator(make_transport(handler))
    seen = []

    job = await orch.start_generation("42", on_event=lambda e, key: seen.append((e.type, key)))

    assert job.phase == JobPhase.COMPLETE
    assert job.progress == 100
    assert job.result_url == "https://x/42"
    assert job.error is None
    assert seen == [("progress", "42"), ("progress", "42"), ("complete", "42"), ("result", "42")]

    request = calls[0]
    assert request.url.path == "/api/design/generateFrontendOnly"
    assert request.headers["Authorization"] == "Bearer test-token"
    assert json.loads(request.content) == {"projectId": 42}


@pytest.mark.anyio
async def test_fullstack_request_carries_credentials(make_transport, streaming, calls):
    async def handler(request):
        calls.append(request)
        return streaming(frames({"type": "result", "resultUrl": "https://x/7"}))

    orch = GenerationOrchestrator(make_transport(handler))
    request = GenerationRequest(
        scope=GenerationScope.FULLSTACK,
        credentials=ExternalServiceCredentials(
            supabaseUrl="https://db.example", supabaseAnonKey="anon", databaseUrl="postgres://x"
        ),
    )

    job = await orch.start_generation("7", request)

    assert job.result_url == "https://x/7"
    assert calls[0].url.path == "/api/design/generate-frontend"
    assert json.loads(calls[0].content) == {
        "projectId": 7,
        "supabaseUrl": "https://db.example",
        "supabaseAnonKey": "anon",
        "databaseUrl": "postgres://x",
    }


@pytest.mark.anyio
async def test_attachments_are_sent_as_multipart(make_transport, streaming, calls):
    async def handler(request):
        calls.append(request)
        return streaming(frames({"type": "complete"}))

    orch = GenerationOrchestrator(make_transport(handler))
    request = GenerationRequest(attachments=[Attachment("logo.png", b"\x89PNG....", "image/png")])

    job = await orch.start_generation("9", request)

    assert job.phase == JobPhase.COMPLETE
    assert calls[0].headers["content-type"].startswith("multipart/form-data")
    assert b'name="projectId"' in calls[0].content
    assert b'filename="logo.png"' in calls[0].content


@pytest.mark.anyio
async def test_rejected_attachment_fails_without_request(make_transport, streaming, calls):
    async def handler(request):
        calls.append(request)
        return streaming(frames({"type": "complete"}))

    orch = GenerationOrchestrator(make_transport(handler))
    request = GenerationRequest(attachments=[Attachment("notes.txt", b"hello")])

    job = await orch.start_generation("9", request)

    assert job.phase == JobPhase.ERROR
    assert "Unsupported file type" in job.error
    assert calls == []


@pytest.mark.anyio
async def test_single_flight_per_job_key(make_transport, streaming, calls):
    gate = asyncio.Event()

    async def handler(request):
        calls.append(request)
        return streaming(
            gated_body(
                gate,
                frames({"type": "progress", "percentage": 5}),
                frames({"type": "result", "resultUrl": "https://x/1"}),
            )
        )

    orch = GenerationOrchestrator(make_transport(handler))
    first = asyncio.create_task(orch.start_generation("1"))
    await wait_for(lambda: is_streaming(orch, "1"))

    duplicate = await orch.start_generation("1")

    assert duplicate.phase == JobPhase.STREAMING
    assert len(calls) == 1

    gate.set()
    final = await first
    assert final.result_url == "https://x/1"
    assert len(calls) == 1


@pytest.mark.anyio
async def test_new_run_allowed_after_terminal(make_transport, streaming, calls):
    async def handler(request):
        calls.append(request)
        return streaming(frames({"type": "error", "error": "quota"}))

    orch = GenerationOrchestrator(make_transport(handler))
    await orch.start_generation("3")
    await orch.start_generation("3")

    assert len(calls) == 2


@pytest.mark.anyio
async def test_http_error_on_init_records_error(make_transport, calls):
    async def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    orch = GenerationOrchestrator(make_transport(handler))
    seen = []

    job = await orch.start_generation("5", on_event=lambda e, key: seen.append(e))

    assert job.phase == JobPhase.ERROR
    assert job.error == "HTTP 500: boom"
    assert [e.type for e in seen] == ["error"]
    assert seen[0].error == "HTTP 500: boom"


@pytest.mark.anyio
async def test_json_reply_means_no_stream(make_transport):
    async def handler(request):
        return httpx.Response(200, json={"ok": True})

    orch = GenerationOrchestrator(make_transport(handler))
    job = await orch.start_generation("5")

    assert job.phase == JobPhase.ERROR
    assert job.error == "No response body"


@pytest.mark.anyio
async def test_missing_token_fails_before_request(make_transport, calls):
    async def handler(request):
        calls.append(request)
        return httpx.Response(200)

    orch = GenerationOrchestrator(make_transport(handler, token=None))
    job = await orch.start_generation("5")

    assert job.phase == JobPhase.ERROR
    assert job.error.startswith("Authentication required")
    assert calls == []


@pytest.mark.anyio
async def test_error_event_is_terminal(make_transport, streaming):
    body = frames(
        {"type": "progress", "percentage": 20},
        {"type": "error", "error": "Model overloaded"},
        {"type": "progress", "percentage": 90},
        {"type": "result", "resultUrl": "https://x/late"},
    )

    async def handler(request):
        return streaming(body)

    orch = GenerationOrchestrator(make_transport(handler))
    seen = []

    job = await orch.start_generation("8", on_event=lambda e, key: seen.append(e.type))

    assert job.phase == JobPhase.ERROR
    assert job.error == "Model overloaded"
    assert job.result_url is None
    assert job.progress == 20
    assert seen == ["progress", "error"]


@pytest.mark.anyio
async def test_progress_never_decreases(make_transport, streaming):
    body = frames(
        {"type": "progress", "percentage": 30},
        {"type": "progress", "percentage": 50},
        {"type": "progress", "percentage": 40, "message": "Retrying step"},
        {"type": "complete"},
    )

    async def handler(request):
        return streaming(body)

    orch = GenerationOrchestrator(make_transport(handler))
    progress = []
    unsubscribe = orch.subscribe(lambda job: progress.append(job.progress))

    await orch.start_generation("11")
    unsubscribe()

    assert progress == sorted(progress)
    assert progress[-1] == 100
    assert 40 not in progress


@pytest.mark.anyio
async def test_stream_ending_without_terminal_event(make_transport, streaming):
    async def handler(request):
        return streaming(frames({"type": "progress", "percentage": 40}))

    orch = GenerationOrchestrator(make_transport(handler))
    seen = []

    job = await orch.start_generation("12", on_event=lambda e, key: seen.append(e.type))

    assert job.phase == JobPhase.ERROR
    assert job.error == "Generation stream ended unexpectedly"
    assert job.progress == 40
    assert seen == ["progress", "error"]


@pytest.mark.anyio
async def test_stalled_stream(make_transport, streaming):
    async def body():
        yield frames({"type": "progress", "percentage": 10})
        raise httpx.ReadTimeout("no data")

    async def handler(request):
        return streaming(body())

    orch = GenerationOrchestrator(make_transport(handler))
    job = await orch.start_generation("13")

    assert job.phase == JobPhase.ERROR
    assert job.error.startswith("Connection timeout")


@pytest.mark.anyio
async def test_generation_time_limit(make_transport, streaming):
    gate = asyncio.Event()

    async def handler(request):
        return streaming(gated_body(gate, frames({"type": "progress", "percentage": 1})))

    orch = GenerationOrchestrator(make_transport(handler), max_duration_seconds=0.05)
    job = await orch.start_generation("14")

    assert job.phase == JobPhase.ERROR
    assert job.error.startswith("Maximum generation time reached")


@pytest.mark.anyio
async def test_cancel_marks_job_cancelled(make_transport, streaming):
    gate = asyncio.Event()

    async def handler(request):
        return streaming(gated_body(gate, frames({"type": "progress", "percentage": 15})))

    orch = GenerationOrchestrator(make_transport(handler))
    seen = []
    run = asyncio.create_task(orch.start_generation("15", on_event=lambda e, key: seen.append(e)))
    await wait_for(lambda: is_streaming(orch, "15"))

    assert orch.cancel("15") is True
    job = await run

    assert job.phase == JobPhase.ERROR
    assert job.error == "Generation cancelled"
    assert job.progress == 15
    assert seen[-1].error == "Generation cancelled"
    assert orch.cancel("15") is False


@pytest.mark.anyio
async def test_cancelling_the_caller_propagates(make_transport, streaming):
    gate = asyncio.Event()

    async def handler(request):
        return streaming(gated_body(gate, frames({"type": "progress", "percentage": 15})))

    orch = GenerationOrchestrator(make_transport(handler))
    run = asyncio.create_task(orch.start_generation("16"))
    await wait_for(lambda: is_streaming(orch, "16"))

    run.cancel()
    with pytest.raises(asyncio.CancelledError):
        await run

    assert orch.get("16").error == "Generation cancelled"


@pytest.mark.anyio
async def test_sweep_abandons_idle_jobs_and_prunes_old_ones(make_transport, streaming):
    now = [0.0]
    gate = asyncio.Event()

    async def handler(request):
        return streaming(gated_body(gate, frames({"type": "progress", "percentage": 15})))

    jobs = JobRepository(retention_seconds=60, clock=lambda: now[0])
    orch = GenerationOrchestrator(make_transport(handler), jobs, job_idle_timeout_seconds=10)
    run = asyncio.create_task(orch.start_generation("17"))
    await wait_for(lambda: is_streaming(orch, "17"))

    now[0] = 100.0
    assert orch.sweep() == 1
    job = await run

    assert job.phase == JobPhase.ERROR
    assert job.error == "Generation abandoned"

    now[0] = 1000.0
    orch.sweep()
    assert orch.get("17") is None


@pytest.mark.anyio
async def test_restart_right_after_abandonment_opens_new_stream(make_transport, streaming, calls):
    now = [0.0]
    gate = asyncio.Event()

    async def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return streaming(gated_body(gate, frames({"type": "progress", "percentage": 15})))
        return streaming(frames({"type": "result", "resultUrl": "https://x/17b"}))

    jobs = JobRepository(retention_seconds=60, clock=lambda: now[0])
    orch = GenerationOrchestrator(make_transport(handler), jobs, job_idle_timeout_seconds=10)
    run = asyncio.create_task(orch.start_generation("17"))
    await wait_for(lambda: is_streaming(orch, "17"))

    now[0] = 100.0
    job = await orch.start_generation("17")
    await run

    assert len(calls) == 2
    assert job.phase == JobPhase.COMPLETE
    assert job.result_url == "https://x/17b"


@pytest.mark.anyio
async def test_reset_only_after_terminal(make_transport, streaming):
    gate = asyncio.Event()

    async def handler(request):
        return streaming(
            gated_body(
                gate,
                frames({"type": "progress", "percentage": 50}),
                frames({"type": "result", "resultUrl": "https://x/18"}),
            )
        )

    orch = GenerationOrchestrator(make_transport(handler))
    run = asyncio.create_task(orch.start_generation("18"))
    await wait_for(lambda: is_streaming(orch, "18"))

    assert orch.reset("18") is False

    gate.set()
    await run
    assert orch.reset("18") is True

    job = orch.get("18")
    assert job.phase == JobPhase.IDLE
    assert job.progress == 0
    assert job.result_url is None
    assert orch.reset("missing") is False


@pytest.mark.anyio
async def test_blank_job_key_is_rejected(make_transport):
    async def handler(request):
        return httpx.Response(200)

    orch = GenerationOrchestrator(make_transport(handler))
    with pytest.raises(ClientError):
        await orch.start_generation("  ")


@pytest.mark.anyio
async def test_callback_failure_does_not_break_the_stream(make_transport, streaming):
    async def handler(request):
        return streaming(frames({"type": "progress", "percentage": 10}, {"type": "complete"}))

    def explode(event, key):
        raise RuntimeError("ui bug")

    orch = GenerationOrchestrator(make_transport(handler))
    job = await orch.start_generation("19", on_event=explode)

    assert job.phase == JobPhase.COMPLETE
