import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile

from docanalysis.analyzers.document_analyzer import DocumentAnalyzer
from docanalysis.clients.submission import build_url_request, validate_model_id
from docanalysis.models.schemas import (
    AnalysisRequest,
    AnalysisResponse,
    DocumentSource,
    SubmitResponse,
    URLAnalysisRequest,
)
from docanalysis.utils.errors import (
    CredentialError,
    DocumentAnalysisError,
    InvalidInput,
    RequestRejected,
    TransportError,
)
from docanalysis.utils.security import validate_api_key

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(validate_api_key)])


def get_analyzer(request: Request) -> DocumentAnalyzer:
    analyzer = getattr(request.app.state, "analyzer", None)
    if analyzer is None:
        raise HTTPException(status_code=503, detail="Analyzer not initialized")
    return analyzer


def to_http_exception(error: DocumentAnalysisError) -> HTTPException:
    if isinstance(error, CredentialError):
        return HTTPException(status_code=503, detail=str(error))
    if isinstance(error, InvalidInput):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, RequestRejected):
        return HTTPException(
            status_code=502,
            detail={
                "error": "Document analysis service rejected the request",
                "upstream_status": error.status_code,
                "upstream_body": error.body,
            },
        )
    if isinstance(error, TransportError):
        return HTTPException(status_code=504, detail=str(error))
    return HTTPException(status_code=502, detail=str(error))


async def _run_analysis(
    analyzer: DocumentAnalyzer,
    request: AnalysisRequest,
    wait: bool,
    poll_interval: Optional[float],
    max_wait: Optional[float],
) -> AnalysisResponse:
    try:
        policy = analyzer.wait_policy(wait, poll_interval, max_wait)
        result = await analyzer.analyze(request, wait_policy=policy)
    except DocumentAnalysisError as e:
        raise to_http_exception(e)
    if result is None:
        raise HTTPException(
            status_code=502,
            detail="Document accepted but the service returned no operation location",
        )
    return AnalysisResponse.from_result(result)


@router.post("/submit", response_model=SubmitResponse)
async def submit_document(
    body: URLAnalysisRequest,
    analyzer: DocumentAnalyzer = Depends(get_analyzer),
):
    """Start an analysis for a document URL and return its result id"""
    model_id = body.model_id or analyzer.settings.default_model_id
    try:
        request = build_url_request(model_id, str(body.document_url))
        handle = await analyzer.submit(request)
    except DocumentAnalysisError as e:
        raise to_http_exception(e)

    return SubmitResponse(
        model_id=model_id,
        result_id=handle.result_id,
        operation_location=handle.operation_location,
        warning=None if handle.is_usable else "No usable Operation-Location header returned",
    )


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_url(
    body: URLAnalysisRequest,
    analyzer: DocumentAnalyzer = Depends(get_analyzer),
):
    """Analyze a document URL, waiting for the result unless wait is false"""
    model_id = body.model_id or analyzer.settings.default_model_id
    try:
        request = build_url_request(model_id, str(body.document_url))
    except DocumentAnalysisError as e:
        raise to_http_exception(e)
    logger.info(f"Gateway URL analysis with model {model_id}")
    return await _run_analysis(analyzer, request, body.wait, body.poll_interval, body.max_wait)


@router.post("/analyze/upload", response_model=AnalysisResponse)
async def analyze_upload(
    file: UploadFile = File(...),
    model_id: Optional[str] = Form(None),
    wait: bool = Form(True),
    analyzer: DocumentAnalyzer = Depends(get_analyzer),
):
    """Analyze an uploaded document"""
    settings = analyzer.settings
    model_id = model_id or settings.default_model_id
    try:
        validate_model_id(model_id)
    except InvalidInput as e:
        raise to_http_exception(e)

    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")
    file_ext = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
    if file_ext not in settings.allowed_extensions:
        raise HTTPException(
            status_code=400,
            detail=f"File type .{file_ext or 'unknown'} not supported. "
                   f"Allowed: {', '.join(settings.allowed_extensions)}"
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > settings.max_file_size:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Size: {len(content) // 1024}KB, Max: {settings.max_file_size // 1024}KB"
        )

    logger.info(f"Gateway upload analysis of {file.filename} with model {model_id}")
    request = AnalysisRequest(
        model_id=model_id,
        source=DocumentSource(file_bytes=content, filename=file.filename),
    )
    return await _run_analysis(analyzer, request, wait, None, None)


@router.get("/analysis/{model_id}/{result_id}", response_model=AnalysisResponse)
async def get_analysis_result(
    model_id: str,
    result_id: str,
    wait: bool = Query(False),
    poll_interval: Optional[float] = Query(None, gt=0),
    max_wait: Optional[float] = Query(None, gt=0),
    analyzer: DocumentAnalyzer = Depends(get_analyzer),
):
    """Fetch the current state of an analysis, optionally waiting for it to finish"""
    try:
        policy = analyzer.wait_policy(wait, poll_interval, max_wait)
        result = await analyzer.wait_for_result(model_id, result_id, wait_policy=policy)
    except DocumentAnalysisError as e:
        raise to_http_exception(e)
    return AnalysisResponse.from_result(result)
