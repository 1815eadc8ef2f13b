from motor.motor_asyncio import AsyncIOMotorClient
import logging
from contextlib import asynccontextmanager

from drivecrm.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB connection, created once at startup and passed to the services."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: AsyncIOMotorClient = None
        self.db = None

    async def connect(self):
        try:
            # timeoutMS bounds every single operation issued through this client
            self.client = AsyncIOMotorClient(
                self.settings.mongo_url,
                timeoutMS=self.settings.mongo_timeout_ms,
                serverSelectionTimeoutMS=self.settings.mongo_timeout_ms,
            )
            self.db = self.client[self.settings.db_name]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {self.settings.db_name}")

            await ensure_indexes(self.db)
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db


async def _create_unique(collection, keys, **kwargs):
    try:
        await collection.create_index(keys, unique=True, **kwargs)
    except Exception as e:
        # Index may already exist with different options
        logger.warning(f"Unique index {collection.name}.{keys} not created: {e}")


async def ensure_indexes(db):
    """Create indexes; unique ones carry the uniqueness guarantees of the core."""
    try:
        # Users
        await _create_unique(db["users"], "id")
        await _create_unique(db["users"], "email")
        await db["users"].create_index([("adminId", 1), ("role", 1)])

        # Leads - leadId is globally unique; email is unique per tenant
        await _create_unique(db["leads"], "id")
        await _create_unique(db["leads"], "leadId", sparse=True)
        await _create_unique(db["leads"], [("email", 1), ("adminId", 1)])
        await db["leads"].create_index([("adminId", 1), ("createdAt", -1)])
        await db["leads"].create_index([("adminId", 1), ("assignedTo", 1)])

        # Activities - timeline queries per lead, per tenant, per type
        await _create_unique(db["activities"], "id")
        await db["activities"].create_index([("leadId", 1), ("timestamp", -1)])
        await db["activities"].create_index([("adminId", 1), ("timestamp", -1)])
        await db["activities"].create_index([("type", 1), ("adminId", 1), ("timestamp", 1)])

        # Comments
        await _create_unique(db["comments"], "id")
        await db["comments"].create_index([("leadId", 1), ("createdAt", -1)])

        # Statuses
        await _create_unique(db["statuses"], "id")
        await _create_unique(db["statuses"], [("adminId", 1), ("name", 1)])

        # Reminders
        await _create_unique(db["reminders"], "id")
        await db["reminders"].create_index([("assignedTo", 1), ("status", 1)])
        await db["reminders"].create_index([("adminId", 1), ("leadId", 1)])

        # Import history
        await _create_unique(db["imports"], "id")
        await db["imports"].create_index([("adminId", 1), ("createdAt", -1)])
        logger.info("MongoDB indexes created/verified")
    except Exception as e:
        # Indexes may already exist, log but don't fail
        logger.warning(f"Index creation note: {e}")


@asynccontextmanager
async def maybe_transaction(db, enabled: bool):
    """Yield a session inside a transaction when enabled, else None.

    Callers order their deletes children first so a run without a
    transaction can only leave orphaned children behind.
    """
    if not enabled:
        yield None
        return
    async with await db.client.start_session() as session:
        async with session.start_transaction():
            yield session


@asynccontextmanager
async def get_db_context(settings: Settings = None):
    """Database connection for scripts."""
    database = Database(settings or Settings.from_env())
    await database.connect()
    try:
        yield database.get_db()
    finally:
        await database.close()
