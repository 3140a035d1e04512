"""FastAPI应用主入口"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager

from chapterflow.config import settings as config_settings
from chapterflow.database import init_db, close_db, _session_stats
from chapterflow.exceptions import ChapterFlowError, RejectionReason, StorageFailure
from chapterflow.logger import setup_logging, get_logger
from chapterflow.middleware import RequestIDMiddleware
from chapterflow.middleware.auth_middleware import AuthMiddleware

setup_logging(
    level=config_settings.log_level,
    log_to_file=config_settings.log_to_file,
    log_file_path=config_settings.log_file_path,
    max_bytes=config_settings.log_max_bytes,
    backup_count=config_settings.log_backup_count
)
logger = get_logger(__name__)

# 拒绝原因对应的 HTTP 状态码
REASON_STATUS = {
    RejectionReason.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    RejectionReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.GUARD_FAILED: status.HTTP_409_CONFLICT,
    RejectionReason.VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    await init_db()
    logger.info("应用启动完成")

    yield

    await close_db()
    logger.info("应用已关闭")


app = FastAPI(
    title=config_settings.app_name,
    version=config_settings.app_version,
    description="书籍章节协作 - 作者撰稿、编辑校对、管理员确认",
    lifespan=lifespan
)


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """处理请求验证错误"""
    logger.error(f"请求验证失败: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "请求参数验证失败",
            "reason": RejectionReason.VALIDATION_FAILED.value,
            "errors": jsonable_errors(exc)
        }
    )


@app.exception_handler(StorageFailure)
async def storage_exception_handler(request: Request, exc: StorageFailure):
    """存储故障：请求未生效，可以重试"""
    logger.error(f"存储故障: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "存储暂时不可用，请稍后重试"}
    )


@app.exception_handler(ChapterFlowError)
async def chapterflow_exception_handler(request: Request, exc: ChapterFlowError):
    """业务拒绝：按原因映射状态码"""
    status_code = REASON_STATUS.get(exc.reason, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "reason": exc.reason.value if exc.reason else None,
            "details": exc.details
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """处理所有未捕获的异常"""
    logger.error(f"未处理的异常: {type(exc).__name__}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "服务器内部错误",
            "message": str(exc) if config_settings.debug else "请稍后重试"
        }
    )

app.add_middleware(RequestIDMiddleware)
app.add_middleware(AuthMiddleware)

if config_settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.get("/health")
async def health_check():
    """健康检查"""
    return {"status": "ok"}


@app.get("/health/db-sessions")
async def db_session_stats():
    """
    数据库会话统计（监控连接泄漏）

    返回：
    - created: 总创建会话数
    - closed: 总关闭会话数
    - active: 当前活跃会话数（应该接近0）
    - errors: 错误次数
    - last_check: 最后检查时间
    """
    return {
        "status": "ok",
        "session_stats": _session_stats,
        "warning": "活跃会话数过多" if _session_stats["active"] > 10 else None
    }


from chapterflow.api import chapters, files, schedules, users

app.include_router(users.router, prefix="/api")
app.include_router(chapters.router, prefix="/api")
app.include_router(files.router, prefix="/api")
app.include_router(schedules.router, prefix="/api")

# 本地 blob 存储的文件通过 public_base_url 访问
if config_settings.public_base_url.startswith("/"):
    config_settings.upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(
        config_settings.public_base_url,
        StaticFiles(directory=str(config_settings.upload_dir)),
        name="uploads"
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chapterflow.main:app",
        host=config_settings.app_host,
        port=config_settings.app_port,
        reload=config_settings.debug
    )
