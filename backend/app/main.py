"""
酒店预订核心 - 主应用入口
房间预订与可用性、房态状态机、附加服务时段容量
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from app.config import settings
from app.database import init_db
from app.exceptions import HotelError, InternalError
from app.routers import rooms, reservations, services

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 初始化数据库
    init_db()
    logger.info(f"{settings.APP_NAME} started")

    yield


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="房间预订、房态管理与附加服务预订",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HotelError)
async def hotel_error_handler(request: Request, exc: HotelError):
    """路由未捕获的业务异常"""
    if isinstance(exc, InternalError):
        logger.error(f"{request.method} {request.url.path}: {exc.message}", exc_info=exc.original_error or exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": InternalError.public_message})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """存储层故障：记录详情，返回通用信息"""
    logger.error(f"{request.method} {request.url.path}: database error", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": InternalError.public_message},
    )


# 注册路由
app.include_router(rooms.router)
app.include_router(reservations.router)
app.include_router(services.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
