from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from qcm.config import settings

Base = declarative_base()

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)

AsyncSessionFactory = async_sessionmaker(engine, expire_on_commit=False)
