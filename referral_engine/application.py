import logging

from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
import uvicorn

from referral_engine.container import setup_container
from referral_engine.exceptions import ReferralEngineError
from referral_engine.routers.health import router as health_router
from referral_engine.routers.referral_router import (
    referral_engine_error_handler,
    request_validation_error_handler,
    router as referral_router,
)
from referral_engine.config import get_config
from referral_engine.stats import StatsdMiddleware, setup_stats


def get_uvicorn_params() -> dict[str, Any]:
    config = get_config()
    kwargs = {
        "host": config.uvicorn.host,
        "port": config.uvicorn.port,
        "reload": config.uvicorn.reload,
        "reload_delay": config.uvicorn.reload_delay,
        "reload_dirs": config.uvicorn.reload_dirs,
    }
    if (
        config.uvicorn.use_ssl
        and config.uvicorn.ssl_base_dir is not None
        and config.uvicorn.ssl_cert_file is not None
        and config.uvicorn.ssl_key_file is not None
    ):
        kwargs["ssl_keyfile"] = (
            config.uvicorn.ssl_base_dir + "/" + config.uvicorn.ssl_key_file
        )
        kwargs["ssl_certfile"] = (
            config.uvicorn.ssl_base_dir + "/" + config.uvicorn.ssl_cert_file
        )

    return kwargs


def run() -> None:
    uvicorn.run("referral_engine.application:create_fastapi_app", factory=True, **get_uvicorn_params())


def create_fastapi_app() -> FastAPI:
    if get_config().stats.enabled:
        setup_stats()

    application_init()
    return setup_fastapi()


def application_init() -> None:
    setup_logging()
    setup_container()


def setup_logging() -> None:
    loglevel = logging.getLevelName(get_config().app.loglevel.value.upper())

    if isinstance(loglevel, str):
        raise ValueError(f"Invalid loglevel {loglevel.upper()}")
    logging.basicConfig(
        level=loglevel,
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )


def setup_fastapi() -> FastAPI:
    config = get_config()

    fastapi = (
        FastAPI(docs_url=config.uvicorn.docs_url, redoc_url=config.uvicorn.redoc_url)
        if config.uvicorn.swagger_enabled
        else FastAPI(docs_url=None, redoc_url=None)
    )

    routers = [
        health_router,
        referral_router,
    ]
    for router in routers:
        fastapi.include_router(router)

    fastapi.add_exception_handler(ReferralEngineError, referral_engine_error_handler)
    fastapi.add_exception_handler(RequestValidationError, request_validation_error_handler)

    if config.stats.enabled:
        fastapi.add_middleware(StatsdMiddleware)

    return fastapi
