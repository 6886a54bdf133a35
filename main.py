#!/usr/bin/env python3
"""
TokenGate -- account signup/login with Redis-backed bearer sessions.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 9999 --reload
  python main.py seed
  python main.py seed --posts 50

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the credential/post database.
  REDIS_URL      Session store, e.g. redis://localhost:6379/0
"""

import argparse
import logging
import random
from datetime import datetime, timezone

from auth.errors import DuplicateCredentialError
from auth.models import User
from auth.passwords import hash_password
from auth.store import UserStore
from core.config import get_settings
from posts.models import Post
from posts.store import PostStore

logger = logging.getLogger("tokengate.seed")

_DEMO_USER = {
    "first_name": "Demo",
    "last_name": "User",
    "age": 40,
    "email": "demo@tokengate.local",
}
_DEMO_PASSWORD = "Pass123"

_TITLES = [
    "My First Post",
    "A Great Day",
    "Thoughts on Technology",
    "Future Plans",
    "Random Ideas",
    "Project Update",
    "Learning Experience",
    "New Discovery",
    "Interesting Findings",
    "Personal Growth",
]

_BODIES = [
    "This is a detailed post about my experiences...",
    "Today I learned something fascinating...",
    "I've been thinking about this project...",
    "Here are my thoughts on recent developments...",
    "Let me share an interesting story...",
]


def _random_post(user_id: int) -> Post:
    now = datetime.now(timezone.utc)
    return Post(
        user_id=user_id,
        title=f"{random.choice(_TITLES)} {now:%Y-%m-%d}",
        body=f"{random.choice(_BODIES)} {now:%H:%M:%S}",
    )


def seed(user_store: UserStore, post_store: PostStore, target_posts: int = 20) -> tuple[User, int]:
    """Create the demo user if missing and top its posts up to target_posts.

    Safe to run repeatedly. Returns the demo user and the number of posts created.
    """
    user = user_store.find_by_email(_DEMO_USER["email"])
    if user is None:
        try:
            user = user_store.create(User(password=hash_password(_DEMO_PASSWORD), **_DEMO_USER))
            logger.info("Created demo user %s", user.email)
        except DuplicateCredentialError:
            # Another seeder won the race; use its record.
            user = user_store.find_by_email(_DEMO_USER["email"])
    else:
        logger.info("Demo user %s already exists", user.email)

    missing = max(0, target_posts - post_store.count_for_user(user.id))
    for _ in range(missing):
        post_store.create(_random_post(user.id))
    logger.info("Created %d post(s) for %s", missing, user.email)
    return user, missing


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="tokengate",
        description="Account and session API with Redis-backed bearer tokens.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  DEBUG=true python main.py serve --port 9999
  python main.py seed --posts 50
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve_p = sub.add_parser("serve", help="Run the HTTP API under uvicorn")
    serve_p.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_p.add_argument("--port", type=int, default=9999, help="Bind port (default: 9999)")
    serve_p.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    seed_p = sub.add_parser("seed", help="Create the demo user and sample posts")
    seed_p.add_argument(
        "--posts",
        type=int,
        default=20,
        metavar="N",
        help="Top the demo user's posts up to N (default: 20)",
    )

    args = parser.parse_args()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)

    elif args.command == "seed":
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-5s %(name)s %(message)s")
        settings = get_settings()
        user_store = UserStore(settings.database_url)
        post_store = PostStore(settings.database_url)
        try:
            user, created = seed(user_store, post_store, target_posts=args.posts)
        finally:
            post_store.close()
            user_store.close()
        print(f"Seeded {user.email} (password: {_DEMO_PASSWORD}); {created} new post(s).")

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
