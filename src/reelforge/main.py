"""FastAPI 应用程序入口点。"""

from __future__ import annotations

import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .errors import (
    BatchConflictError,
    ContentFilteredError,
    EmptyVendorResponseError,
    PrerequisiteError,
    SegmentEditError,
    VendorConfigurationError,
    VendorHTTPError,
)
from .instrumentation import get_logger
from .routers import batches_router, generation_router, projects_router, segments_router
from .services import get_batch_service

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """管理应用程序生命周期。"""
    logger.info(f"正在启动 Reelforge ({settings.environment}, providers={settings.provider_mode})")

    # 如果配置了数据库，则初始化数据库
    if settings.database_url:
        from .database import init_database
        from .repository import DatabaseProjectRepository, project_repository

        try:
            await init_database()
            project_repository.set_delegate(DatabaseProjectRepository())
            logger.info("数据库初始化成功，项目存储库已切换到数据库后端")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}", exc_info=True)
            logger.warning("数据库初始化失败，应用将继续使用内存存储启动")
    else:
        logger.info("未配置数据库; 使用内存存储")

    yield

    # 关闭
    logger.info("正在关闭 Reelforge")
    await get_batch_service().shutdown()
    if settings.database_url:
        from .database import db_manager

        await db_manager.close()


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    lifespan=lifespan,
)

# CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)
app.include_router(segments_router)
app.include_router(generation_router)
app.include_router(batches_router)


# ============================================================================
# 异常映射
# ============================================================================


@app.exception_handler(VendorConfigurationError)
async def vendor_configuration_handler(request: Request, exc: VendorConfigurationError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "vendor": exc.vendor, "missing": exc.missing},
    )


@app.exception_handler(VendorHTTPError)
async def vendor_http_handler(request: Request, exc: VendorHTTPError):
    return JSONResponse(
        status_code=502,
        content={
            "detail": str(exc),
            "vendor": exc.vendor,
            "vendorStatus": exc.status_code,
            "vendorBody": exc.body,
        },
    )


@app.exception_handler(EmptyVendorResponseError)
async def empty_vendor_response_handler(request: Request, exc: EmptyVendorResponseError):
    return JSONResponse(status_code=502, content={"detail": str(exc), "vendor": exc.vendor})


@app.exception_handler(ContentFilteredError)
async def content_filtered_handler(request: Request, exc: ContentFilteredError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "code": exc.code})


@app.exception_handler(PrerequisiteError)
async def prerequisite_handler(request: Request, exc: PrerequisiteError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(SegmentEditError)
async def segment_edit_handler(request: Request, exc: SegmentEditError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(BatchConflictError)
async def batch_conflict_handler(request: Request, exc: BatchConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(KeyError)
async def not_found_handler(request: Request, exc: KeyError):
    detail = exc.args[0] if exc.args else "Not found"
    return JSONResponse(status_code=404, content={"detail": str(detail)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """全局异常处理程序，确保 JSON 响应。"""
    logger.error(f"未处理的异常在 {request.method} {request.url.path}: {exc}", exc_info=True)

    content = {
        "detail": "内部服务器错误",
        "error": str(exc),
        "error_type": type(exc).__name__,
    }
    # 非生产环境附带回溯
    if settings.environment != "production":
        content["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        content["path"] = str(request.url.path)
    return JSONResponse(status_code=500, content=content)


@app.get("/")
async def root():
    """基本服务元数据。"""
    return {
        "message": "Reelforge API",
        "version": settings.api_version,
        "docs": "/docs",
    }


@app.get("/healthz")
async def healthcheck() -> dict[str, str]:
    """健康检查端点。"""
    return {"status": "ok", "environment": settings.environment}


@app.get("/readyz")
async def readiness_check() -> dict[str, str]:
    """容器编排的就绪检查。"""
    checks = {
        "status": "ready",
        "database": "not_configured",
        "providers": settings.provider_mode,
    }

    if settings.database_url:
        from .database import db_manager

        checks["database"] = "connected" if db_manager.engine else "not_initialized"

    return checks
