"""
FastAPI server for the claude2openai proxy.
This module contains the FastAPI application and API endpoints.
"""

import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import WELCOME_MESSAGE
from .client import (
    create_claude_client,
    get_model_max_tokens,
    list_models,
    load_models_config,
    resolve_model,
)
from .converters import OpenAIConverter, OpenAIStreamingConverter, format_sse
from .errors import InvalidRequestError, ProxyError, UpstreamError, error_from_transport
from .types import ClaudeMessagesRequest, ClaudeMessagesResponse, OpenAIChatRequest, global_usage_stats
from .utils import update_global_usage_stats

logger = logging.getLogger(__name__)

STREAMING_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

openai_converter = OpenAIConverter()


def parse_authorization_header(request: Request) -> str:
    """Extract the Anthropic API key from an OpenAI-style bearer token.

    Raises:
        InvalidRequestError: If the header is missing or not ``Bearer <key>``
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise InvalidRequestError("invalid Authorization header format")
    api_key = auth_header[len("Bearer "):].strip()
    if not api_key:
        raise InvalidRequestError("invalid Authorization header format")
    return api_key


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan event handler."""
    load_models_config()
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.debug(f"Request: {request.method} {request.url.path}")
    return await call_next(request)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    return exc.to_json_response()


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # Unknown paths and unsupported methods both answer 404
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content={"code": 404, "message": "Path not found"})
    return ProxyError(str(exc.detail), status_code=exc.status_code).to_json_response()


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error handling {request.method} {request.url.path}: {exc}")
    return ProxyError(f"Internal server error: {exc}").to_json_response()


@app.get("/")
async def root():
    return {"message": WELCOME_MESSAGE}


@app.get("/v1/models")
async def models():
    return list_models()


@app.get("/v1/stats")
async def get_stats():
    """Returns the token usage statistics for the current session."""
    return global_usage_stats.get_session_summary()


@app.post("/v1/chat/completions")
async def chat_completions(raw_request: Request):
    body = await raw_request.body()
    try:
        request = OpenAIChatRequest.model_validate_json(body)
    except ValidationError as e:
        raise InvalidRequestError(_format_validation_error(e)) from e

    api_key = parse_authorization_header(raw_request)

    model = resolve_model(request.model)
    claude_request = openai_converter.request_to_anthropic(
        request, model=model, max_tokens=get_model_max_tokens(model)
    )

    log_request_beautifully(
        "POST",
        raw_request.url.path,
        request.model,
        model,
        len(claude_request.messages),
        len(claude_request.tools or []),
        claude_request.stream,
    )

    if claude_request.stream:
        return await _stream_chat_completion(claude_request, api_key)
    return await _create_chat_completion(claude_request, api_key)


async def _create_chat_completion(claude_request: ClaudeMessagesRequest, api_key: str) -> JSONResponse:
    start_time = time.time()
    async with create_claude_client(api_key) as client:
        try:
            response = await client.post("/messages", json=claude_request.to_payload())
        except httpx.RequestError as e:
            logger.error(f"Claude API request failed: {type(e).__name__}: {e}")
            raise error_from_transport(e) from e

    if response.status_code >= 400:
        error = UpstreamError.from_response(response.status_code, response.content)
        logger.error(f"Claude API error {error.status_code}: {error.error_type}: {error.message}")
        raise error

    try:
        data = response.json()
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse Claude API response JSON: {e}")
        raise ProxyError("Failed to parse response from Claude API", status_code=502) from e

    if isinstance(data, dict) and data.get("type") == "error":
        raise UpstreamError.from_response(response.status_code, response.content)

    try:
        claude_response = ClaudeMessagesResponse.model_validate(data)
    except ValidationError as e:
        logger.error(f"Unexpected Claude API response shape: {e}")
        raise ProxyError("Failed to parse response from Claude API", status_code=502) from e

    logger.debug(
        f"RESPONSE RECEIVED: Model={claude_response.model}, Time={time.time() - start_time:.2f}s"
    )
    update_global_usage_stats(claude_response.usage, claude_request.model, "chat.completion")

    return JSONResponse(content=openai_converter.response_from_anthropic(claude_response))


async def _stream_chat_completion(
    claude_request: ClaudeMessagesRequest, api_key: str
) -> StreamingResponse:
    client = create_claude_client(api_key)
    try:
        response = await client.send(
            client.build_request("POST", "/messages", json=claude_request.to_payload()),
            stream=True,
        )
    except httpx.RequestError as e:
        await client.aclose()
        logger.error(f"Claude API streaming request failed: {type(e).__name__}: {e}")
        raise error_from_transport(e) from e

    # Errors are reported with their HTTP status before any event is sent
    if response.status_code != 200:
        error_body = await response.aread()
        await response.aclose()
        await client.aclose()
        error = UpstreamError.from_response(response.status_code, error_body)
        logger.error(f"Claude API streaming error {error.status_code}: {error.error_type}: {error.message}")
        raise error

    converter = OpenAIStreamingConverter()

    async def event_generator() -> AsyncIterator[str]:
        try:
            async for chunk in converter.stream_from_anthropic(
                response.aiter_text(), claude_request.model
            ):
                yield chunk
        except httpx.RequestError as e:
            # Status line is already sent; report in-band and end the stream
            logger.error(f"Claude API stream interrupted: {type(e).__name__}: {e}")
            error = ProxyError(f"Failed to read response from Claude API: {e}", status_code=502)
            yield format_sse(error.to_openai_error())
            yield format_sse("[DONE]")
        finally:
            await response.aclose()
            await client.aclose()
            if converter.usage.input_tokens or converter.usage.output_tokens:
                update_global_usage_stats(converter.usage, claude_request.model, "chat.completion.chunk")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=STREAMING_HEADERS,
    )


def _format_validation_error(e: ValidationError) -> str:
    first = e.errors()[0] if e.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request body")
    return f"{location}: {message}" if location else message


def log_request_beautifully(method, path, requested_model, claude_model, num_messages, num_tools, stream):
    """Log the OpenAI to Claude model mapping for a request."""
    logger.info(f"{method} {path}")
    mode = "stream" if stream else "sync"
    logger.info(
        f"{requested_model or '<none>'} → {claude_model} {num_tools} tools {num_messages} messages ({mode})"
    )


def run_server(host: str, port: int, reload: bool = False) -> None:
    """Run the proxy with uvicorn in the current process."""
    uvicorn.run(
        "claude2openai.server:app",
        host=host,
        port=port,
        log_config=None,
        reload=reload,
    )
