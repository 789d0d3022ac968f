"""Create tables, seed mood types and migrate legacy mood rows"""
import asyncio
import logging

from nomi.db.connection import db
from nomi.db.schema import init_schema

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def main():
    """Run schema bootstrap"""
    try:
        logger.info("Initializing database connection...")
        await db.init_pool()

        if not db.is_available:
            logger.error("❌ No database URL configured (EXPO_PUBLIC_DATABASE_URL / DATABASE_URL)")
            return

        if not await db.test_connection():
            logger.error("❌ Database unreachable")
            return

        result = await init_schema()
        logger.info(
            f"✅ Schema ready\n"
            f"  - Mood types seeded: {result['seeded']}\n"
            f"  - Legacy mood entries migrated: {result['migrated']}"
        )

    except Exception as e:
        logger.error(f"❌ Error during schema initialization: {e}", exc_info=True)
    finally:
        await db.close_pool()


if __name__ == "__main__":
    asyncio.run(main())
