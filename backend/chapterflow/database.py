"""数据库连接和会话管理"""
import asyncio
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from sqlalchemy import select, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from chapterflow.config import settings
from chapterflow.logger import get_logger

logger = get_logger(__name__)

# 创建基类（模型模块从这里导入 Base）
Base = declarative_base()

# 全局引擎与会话工厂
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None
_engine_lock = asyncio.Lock()

# 会话统计（用于监控连接泄漏）
_session_stats = {
    "created": 0,
    "closed": 0,
    "active": 0,
    "errors": 0,
    "last_check": None
}

# 三个固定的制作节点：(序号, 名称, 默认日期)
DEFAULT_SCHEDULES = [
    (1, "截稿", date(2026, 2, 22)),
    (2, "交付印刷", date(2026, 3, 6)),
    (3, "出版目标", date(2026, 3, 15)),
]


def _ensure_sqlite_dir(database_url: str) -> None:
    """文件型 SQLite 数据库需要先创建所在目录"""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


async def get_engine() -> AsyncEngine:
    """获取或创建全局数据库引擎（协程安全）"""
    global _engine, _session_factory
    if _engine is not None:
        return _engine

    async with _engine_lock:
        if _engine is None:
            _ensure_sqlite_dir(settings.database_url)
            engine = create_async_engine(
                settings.database_url,
                echo=settings.database_echo,
                future=True,
                pool_pre_ping=True,
            )

            if engine.dialect.name == "sqlite":
                try:
                    async with engine.begin() as conn:
                        await conn.execute(text("PRAGMA journal_mode=WAL"))
                        await conn.execute(text("PRAGMA busy_timeout=5000"))
                    logger.info("✅ SQLite 已启用 WAL 模式")
                except Exception as e:
                    logger.warning(f"⚠️ SQLite 优化失败: {str(e)}")

            _engine = engine
            _session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            logger.info(f"创建数据库引擎: {engine.url.render_as_string(hide_password=True)}")

    return _engine


def set_engine(engine: AsyncEngine) -> None:
    """替换全局引擎（测试或嵌入其他应用时使用）"""
    global _engine, _session_factory
    _engine = engine
    _session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session_factory() -> async_sessionmaker:
    """获取会话工厂"""
    await get_engine()
    return _session_factory


async def get_db():
    """获取数据库会话的依赖函数"""
    session_factory = await get_session_factory()
    session = session_factory()
    session_id = id(session)

    _session_stats["created"] += 1
    _session_stats["active"] += 1
    logger.debug(f"📊 会话创建 [ID:{session_id}] - 活跃:{_session_stats['active']}, 总创建:{_session_stats['created']}")

    try:
        yield session
    except Exception as e:
        _session_stats["errors"] += 1
        logger.error(f"❌ 会话异常 [ID:{session_id}]: {str(e)}")
        if session.in_transaction():
            await session.rollback()
            logger.info(f"✅ 事务已回滚 [ID:{session_id}]")
        raise
    finally:
        try:
            if session.in_transaction():
                await session.rollback()
            await session.close()
        finally:
            _session_stats["closed"] += 1
            _session_stats["active"] -= 1
            _session_stats["last_check"] = datetime.now().isoformat()
            logger.debug(f"📊 会话关闭 [ID:{session_id}] - 活跃:{_session_stats['active']}, 总关闭:{_session_stats['closed']}")

            if _session_stats["active"] > 100:
                logger.warning(f"🚨 活跃会话数过多: {_session_stats['active']}，可能存在连接泄漏！")


async def _init_schedules() -> None:
    """插入三个固定的制作节点（已存在则跳过）"""
    from chapterflow.models.schedule import Schedule

    session_factory = await get_session_factory()
    async with session_factory() as session:
        result = await session.execute(select(Schedule))
        if result.scalars().first():
            logger.info("制作日程已存在，跳过初始化")
            return

        for order_number, title, due_date in DEFAULT_SCHEDULES:
            session.add(Schedule(order_number=order_number, title=title, due_date=due_date))
        await session.commit()
        logger.info(f"成功插入 {len(DEFAULT_SCHEDULES)} 条制作日程")


async def init_db() -> None:
    """初始化数据库，创建所有表并插入预置数据"""
    try:
        logger.info("开始初始化数据库...")
        engine = await get_engine()

        # 导入所有模型，确保 Base.metadata 能够发现它们
        import chapterflow.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        await _init_schedules()
        logger.info("数据库初始化成功")
    except Exception as e:
        logger.error(f"数据库初始化失败: {str(e)}", exc_info=True)
        raise


async def close_db() -> None:
    """关闭数据库连接"""
    global _engine, _session_factory
    if _engine is None:
        return
    try:
        logger.info("正在关闭数据库连接...")
        await _engine.dispose()
        logger.info("数据库连接已关闭")
    except Exception as e:
        logger.error(f"关闭数据库连接失败: {str(e)}", exc_info=True)
        raise
    finally:
        _engine = None
        _session_factory = None
