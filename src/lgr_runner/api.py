"""FastAPI application for running named R script modules over HTTP."""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from pydantic import BaseModel, Field, ValidationError

from . import __version__
from .config import JobConfig, RunnerConfig
from .events import StorageEventSink
from .exceptions import ConfigurationError, LgrError
from .logging import setup_logging
from .rwrapper import RWrapper
from .runner import TransformationRunner
from .script import resolve_named_script
from .storage import StorageApiClient


@lru_cache()
def get_runner_config() -> RunnerConfig:
    return RunnerConfig.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure JSON logging when the server starts."""
    setup_logging(level=get_runner_config().log_level, redact_secrets=True)
    yield


app = FastAPI(
    title="LuckyGuess R API",
    version=__version__,
    description="Runs R script modules against Redshift and stores produced files in Storage API.",
    lifespan=lifespan,
)


class ExecRequest(BaseModel):
    script: str = ""
    source: str = ""
    parameters: Any = None
    file_tags: List[str] = Field(default_factory=list, alias="fileTags")
    debug: bool = False


def storage_token(
    x_storageapi_token: Optional[str] = Header(None, alias="X-StorageApi-Token"),
) -> str:
    """Require a Storage API token header."""
    if not x_storageapi_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-StorageApi-Token header",
        )
    return x_storageapi_token


def _user_error(error: LgrError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_dict())


@app.post("/exec", summary="Run a named R script module")
def exec_script(
    request: ExecRequest,
    token: str = Depends(storage_token),
    run_id: Optional[str] = Header(None, alias="X-KBC-RunId"),
    config: RunnerConfig = Depends(get_runner_config),
) -> dict:
    """Run a script module and upload the files it registers."""
    script = request.script.strip()
    if not script:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You need to provide value for parameter 'script' in request.",
        )
    source = request.source.strip()
    if not source:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You need to provide value for parameter 'source' in request.",
        )

    try:
        script_path = resolve_named_script(config.script_dir, script)
        job = JobConfig(
            script=script_path.read_text(encoding="utf-8"),
            source_table=source,
            script_parameters=request.parameters or {},
            file_tags=request.file_tags,
            # Unset debug falls back to the runner environment
            debug=True if request.debug else None,
            token=token,
            run_id=run_id or "",
            module_name=script,
        )
    except ConfigurationError as e:
        raise _user_error(e) from e
    except ValidationError as e:
        raise _user_error(ConfigurationError(f"Invalid job configuration: {e}")) from e

    storage = StorageApiClient(token, config.storage_api_url, run_id=run_id or "")
    runner = TransformationRunner(
        config, job, events=StorageEventSink(storage, config.component)
    )
    try:
        result = runner.run_to_storage(storage)
    except LgrError as e:
        raise _user_error(e) from e

    return {"result": result.tables}


@app.get("/list", summary="List R script modules with their parameters")
def list_scripts(config: RunnerConfig = Depends(get_runner_config)) -> dict:
    try:
        return RWrapper(config).list_scripts()
    except LgrError as e:
        raise _user_error(e) from e


__all__ = ["app"]
