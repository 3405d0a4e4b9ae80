from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient

from config.env import MONGO_URI

if not MONGO_URI:
    raise RuntimeError("MONGODB_URI not set")

client = AsyncIOMotorClient(MONGO_URI)
db = client.get_default_database()

def get_db():
    return db


@asynccontextmanager
async def transaction(db):
    """
    Multi-document transaction scope.
    Commits on clean exit, aborts on any exception.
    """
    async with await db.client.start_session() as session:
        async with session.start_transaction():
            yield session
