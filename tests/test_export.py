import json

import pytest

from docanalysis.models.schemas import AnalysisResult, AnalysisStatus
from docanalysis.utils.export import OutputMode, export_result, summarize_result

from conftest import RESULT_ID, succeeded


@pytest.fixture
def result():
    return AnalysisResult(
        status=AnalysisStatus.SUCCEEDED,
        raw_payload=succeeded(content="Quarterly report", pages=3),
        model_id="prebuilt-layout",
        result_id=RESULT_ID,
    )


@pytest.mark.asyncio
async def test_export_value_and_json(result):
    value = await export_result(result, OutputMode.VALUE)
    text = await export_result(result, "json")

    assert value["status"] == "succeeded"
    assert value["raw_payload"]["analyzeResult"]["content"] == "Quarterly report"
    assert json.loads(text) == value


@pytest.mark.asyncio
async def test_export_file_default_path(result, tmp_path):
    path = await export_result(result, OutputMode.FILE, output_dir=tmp_path / "out")

    assert path == tmp_path / "out" / f"prebuilt-layout_{RESULT_ID}.json"
    assert json.loads(path.read_text(encoding="utf-8"))["result_id"] == RESULT_ID


@pytest.mark.asyncio
async def test_export_file_explicit_path(result, tmp_path):
    target = tmp_path / "nested" / "result.json"

    path = await export_result(result, OutputMode.FILE, output_path=target)

    assert path == target
    assert target.exists()


def test_summary_mentions_key_facts(result):
    summary = summarize_result(result)

    assert "succeeded" in summary
    assert RESULT_ID in summary
    assert "Pages:        3" in summary
    assert "Quarterly report" in summary


def test_summary_flags_exhausted_budget():
    result = AnalysisResult(
        status=AnalysisStatus.RUNNING,
        model_id="prebuilt-read",
        result_id=RESULT_ID,
        budget_exhausted=True,
        message="Wait budget of 10s exhausted; analysis still running",
    )

    summary = summarize_result(result)

    assert "wait budget exhausted" in summary
    assert "Pages" not in summary
