import json

import pytest
from dotenv import dotenv_values

from docanalysis.cli import EXIT_BUDGET_EXHAUSTED, EXIT_FAILURE, EXIT_OK, build_parser, run
from docanalysis.utils.config import Settings

from conftest import RESULT_ID, running, succeeded


def parse(settings, *argv):
    return build_parser(settings).parse_args(list(argv))


@pytest.fixture
def plain_settings():
    return Settings(_env_file=None)


def test_source_options_are_mutually_exclusive(plain_settings):
    settings = plain_settings
    with pytest.raises(SystemExit):
        parse(settings, "submit", "--url", "https://example.com/a.pdf", "--path", "a.pdf")
    with pytest.raises(SystemExit):
        parse(settings, "submit")


def test_defaults_come_from_settings(plain_settings):
    settings = plain_settings
    args = parse(settings, "poll", "--result-id", RESULT_ID)

    assert args.model_id == settings.default_model_id
    assert args.api_version == settings.api_version
    assert args.wait is True
    assert args.poll_interval == settings.poll_interval
    assert args.output == "value"
    assert parse(settings, "poll", "-r", RESULT_ID, "--no-wait").wait is False


@pytest.mark.asyncio
async def test_submit_prints_result_id(service, settings, capsys):
    args = parse(settings, "submit", "--url", "https://example.com/a.pdf")

    assert await run(args, settings) == EXIT_OK
    assert capsys.readouterr().out.strip() == RESULT_ID


@pytest.mark.asyncio
async def test_submit_local_file(service, settings, tmp_path, capsys):
    document = tmp_path / "scan.png"
    document.write_bytes(b"\x89PNG fake")
    args = parse(settings, "submit", "--path", str(document), "--model-id", "prebuilt-read")

    assert await run(args, settings) == EXIT_OK
    assert service.submissions[0]["body"] == b"\x89PNG fake"
    assert service.submissions[0]["model_id"] == "prebuilt-read"


@pytest.mark.asyncio
async def test_submit_without_operation_location_warns(service, settings, capsys):
    service.send_location = False
    args = parse(settings, "submit", "--url", "https://example.com/a.pdf")

    assert await run(args, settings) == EXIT_OK
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "no result id" in captured.err


@pytest.mark.asyncio
async def test_poll_json_output(service, settings, capsys):
    service.queue(RESULT_ID, succeeded())
    args = parse(settings, "poll", "--result-id", RESULT_ID, "--output", "json")

    assert await run(args, settings) == EXIT_OK
    printed = json.loads(capsys.readouterr().out)
    assert printed["status"] == "succeeded"
    assert printed["result_id"] == RESULT_ID


@pytest.mark.asyncio
async def test_poll_file_output(service, settings, tmp_path, capsys):
    service.queue(RESULT_ID, succeeded())
    target = tmp_path / "result.json"
    args = parse(settings, "poll", "-r", RESULT_ID, "--output", "file", "--output-path", str(target))

    assert await run(args, settings) == EXIT_OK
    assert json.loads(target.read_text(encoding="utf-8"))["status"] == "succeeded"
    assert str(target) in capsys.readouterr().out


@pytest.mark.asyncio
async def test_analyze_prints_summary(service, settings, capsys):
    service.queue(RESULT_ID, succeeded(content="Invoice 42"))
    args = parse(settings, "analyze", "--url", "https://example.com/invoice.pdf")

    assert await run(args, settings) == EXIT_OK
    out = capsys.readouterr().out
    assert "Status:       succeeded" in out
    assert "Invoice 42" in out


@pytest.mark.asyncio
async def test_analyze_strict_budget_exit_code(service, settings, capsys):
    service.queue(RESULT_ID, running())
    args = parse(
        settings, "analyze", "--url", "https://example.com/a.pdf",
        "--poll-interval", "0.01", "--max-wait", "0.05", "--strict",
    )

    assert await run(args, settings) == EXIT_BUDGET_EXHAUSTED
    assert "wait budget" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_rejected_request_prints_banner(service, settings, capsys):
    service.submit_status = 403
    service.submit_error_body = "Forbidden"
    args = parse(settings, "analyze", "--url", "https://example.com/a.pdf")

    assert await run(args, settings) == EXIT_FAILURE
    err = capsys.readouterr().err
    assert "❌ analyze failed" in err
    assert "403" in err


@pytest.mark.asyncio
async def test_missing_credentials(service, settings, capsys):
    empty = settings.model_copy(update={"document_intelligence_key": ""})
    args = parse(empty, "submit", "--url", "https://example.com/a.pdf")

    assert await run(args, empty) == EXIT_FAILURE
    assert "No key supplied" in capsys.readouterr().err
    assert service.submissions == []


@pytest.mark.asyncio
async def test_init_writes_env_file(settings, tmp_path, capsys):
    env_file = tmp_path / ".env"
    args = parse(
        settings, "init", "--key", "new-key",
        "--endpoint", "https://example.cognitiveservices.azure.com", "--env-file", str(env_file),
    )

    assert await run(args, settings) == EXIT_OK
    values = dotenv_values(env_file)
    assert values["DOCUMENT_INTELLIGENCE_KEY"] == "new-key"
    assert values["DOCUMENT_INTELLIGENCE_ENDPOINT"] == "https://example.cognitiveservices.azure.com/"


@pytest.mark.asyncio
async def test_init_rejects_bad_endpoint(settings, tmp_path, capsys):
    env_file = tmp_path / ".env"
    args = parse(settings, "init", "--key", "k", "--endpoint", "not-a-url", "--env-file", str(env_file))

    assert await run(args, settings) == EXIT_FAILURE
    assert not env_file.exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("option, value", [
    ("--max-wait", "-1"),
    ("--max-wait", "0"),
    ("--poll-interval", "0"),
])
async def test_poll_rejects_non_positive_wait_options(service, settings, capsys, option, value):
    service.queue(RESULT_ID, running(), succeeded())
    args = parse(settings, "poll", "--result-id", RESULT_ID, option, value)

    assert await run(args, settings) == EXIT_FAILURE
    assert "❌ poll failed" in capsys.readouterr().err
    assert service.fetches == []
