"""
数据库配置 - 持久化层
所有跨记录的不变量（同一房间不重叠、时段不超卖）都在存储层保证：
SQLite 下每个事务以 BEGIN IMMEDIATE 开始（写锁串行化），
其他数据库使用行级锁 (SELECT ... FOR UPDATE)。
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from app.config import settings

Base = declarative_base()


def configure_sqlite_locking(engine: Engine) -> Engine:
    """让 SQLite 事务在开始时即获取写锁

    pysqlite 默认延迟 BEGIN，两个并发事务都能读到"无冲突"后再写入。
    关闭驱动自身的事务管理，由 begin 事件发出 BEGIN IMMEDIATE。
    """
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str, **kwargs) -> Engine:
    """根据 URL 创建引擎（SQLite 自动配置锁）"""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", settings.SQLITE_BUSY_TIMEOUT)
        kwargs["connect_args"] = connect_args
    return configure_sqlite_locking(create_engine(url, **kwargs))


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """依赖注入：获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """事务边界：成功提交，任何异常整体回滚"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db():
    """初始化数据库表"""
    from app.models import ontology  # noqa
    Base.metadata.create_all(bind=engine)
