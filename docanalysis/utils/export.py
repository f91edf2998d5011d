import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import aiofiles

from docanalysis.models.schemas import AnalysisResult

logger = logging.getLogger(__name__)


class OutputMode(str, Enum):
    VALUE = "value"
    JSON = "json"
    FILE = "file"


def result_to_dict(result: AnalysisResult) -> Dict[str, Any]:
    return result.model_dump(mode="json")


def result_to_json(result: AnalysisResult, indent: int = 2) -> str:
    return json.dumps(result_to_dict(result), indent=indent, ensure_ascii=False)


def default_output_path(result: AnalysisResult, output_dir: Union[str, Path]) -> Path:
    name = result.result_id or result.retrieved_at.strftime("%Y%m%dT%H%M%S")
    return Path(output_dir) / f"{result.model_id or 'analysis'}_{name}.json"


async def write_result(result: AnalysisResult, path: Union[str, Path]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(target, "w", encoding="utf-8") as f:
        await f.write(result_to_json(result))
    logger.info(f"Analysis result saved to {target}")
    return target


async def export_result(
    result: AnalysisResult,
    mode: Union[OutputMode, str] = OutputMode.VALUE,
    output_path: Optional[Union[str, Path]] = None,
    output_dir: Union[str, Path] = "./results",
):
    """Return the result as a dict, as JSON text, or write it and return the path."""
    mode = OutputMode(mode)
    if mode == OutputMode.VALUE:
        return result_to_dict(result)
    if mode == OutputMode.JSON:
        return result_to_json(result)
    return await write_result(result, output_path or default_output_path(result, output_dir))


def summarize_result(result: AnalysisResult) -> str:
    """Human-readable summary of an analysis result for console output."""
    lines = [
        f"Status:       {result.status.value}",
        f"Model:        {result.model_id or '-'}",
        f"Result id:    {result.result_id or '-'}",
        f"Retrieved at: {result.retrieved_at.isoformat()}",
    ]

    analyzed = result.analyze_result
    if analyzed:
        lines.append(f"Pages:        {len(analyzed.get('pages') or [])}")
        lines.append(f"Tables:       {len(analyzed.get('tables') or [])}")
        lines.append(f"Paragraphs:   {len(analyzed.get('paragraphs') or [])}")
        documents = analyzed.get("documents") or []
        if documents:
            lines.append(f"Documents:    {len(documents)}")
        content = analyzed.get("content") or ""
        lines.append(f"Content:      {len(content)} characters")
        if content:
            preview = " ".join(content.split())[:200]
            lines.append(f"Preview:      {preview}")

    if result.budget_exhausted:
        lines.append("Warning:      wait budget exhausted before the analysis finished")
    if result.message:
        lines.append(f"Message:      {result.message}")
    return "\n".join(lines)
