"""User database queries"""
import logging
from nomi.db.connection import db
from nomi.models.user import User

logger = logging.getLogger(__name__)


async def upsert_user(user: User) -> bool:
    """
    Create a user profile; an existing clerk_id is left untouched

    Returns:
        True if a row was inserted
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO users (clerk_id, firstname, lastname, username, email, date_of_birth, gender)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (clerk_id) DO NOTHING
                RETURNING clerk_id
                """,
                (
                    user.clerk_id,
                    user.firstname,
                    user.lastname,
                    user.username,
                    user.email,
                    user.date_of_birth,
                    user.gender,
                )
            )
            result = await cur.fetchone()
            await conn.commit()

    if result:
        logger.info(f"Created user {user.clerk_id}")
        return True
    return False


async def ensure_user(clerk_id: str) -> None:
    """Make sure a bare users row exists before writing entries for it"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "INSERT INTO users (clerk_id) VALUES (%s) ON CONFLICT (clerk_id) DO NOTHING",
                (clerk_id,)
            )
            await conn.commit()


async def user_exists(clerk_id: str) -> bool:
    """Check if user exists"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute("SELECT 1 FROM users WHERE clerk_id = %s", (clerk_id,))
            return await cur.fetchone() is not None
