"""Store seeder: sample articles plus a nested comment thread per article."""
import asyncio
import argparse
import random
import time
from datetime import date, timedelta

from blogdata.config import settings
from blogdata.ids import generate_id
from blogdata.layer import BlogDataLayer
from blogdata.schemas import Article, Comment
from blogdata.services import article_service

CATEGORIES = ["tech", "life", "other"]
TAGS = ["python", "shaders", "unity", "unreal", "rendering", "tools",
        "notes", "math", "lighting", "animation"]
NAMES = ["Ann", "Bo", "Chen", "Dara", "Eli", "Fay"]


async def _push_comment(data: BlogDataLayer, article_id: str, parent_id: str | None, day: date) -> str:
    # Written directly through the selector: seeding must not trip the comment limiter.
    comment = Comment(
        id=generate_id(),
        article_id=article_id,
        parent_id=parent_id,
        name=random.choice(NAMES),
        text=f"Seeded comment on article {article_id}.",
        date=day.isoformat(),
    )
    await data.selector.push(settings.COMMENTS_PATH, comment.model_dump(by_alias=True))
    return comment.id


async def seed(small: bool = False, force_proxy: bool = False):
    num_articles = 5 if small else 50
    max_thread_depth = settings.MAX_NESTING_LEVEL + 1

    print(f"Seeding {settings.STORE_URL}: {num_articles} articles")
    start = time.perf_counter()

    async with BlogDataLayer() as data:
        if force_proxy:
            data.selector.force_proxy()
        print(f"  Transport: {data.selector.mode.value}")

        total_comments = 0
        for i in range(num_articles):
            day = date.today() - timedelta(days=random.randint(0, 365))
            article = Article(
                id=generate_id(),
                title=f"Article {i}: notes on {random.choice(TAGS)}",
                content=f"This is the full content of article {i}. " * 20,
                category=random.choice(CATEGORIES),
                date=day.isoformat(),
                tags=random.sample(TAGS, k=random.randint(1, 4)),
            )
            await article_service.save_article(data.selector, article)

            # One root per article with a reply chain one level deeper than
            # replies are offered for, plus a few extra roots.
            parent_id = None
            for _ in range(max_thread_depth + 1):
                parent_id = await _push_comment(data, article.id, parent_id, day)
                total_comments += 1
            for _ in range(random.randint(0, 3)):
                await _push_comment(data, article.id, None, day)
                total_comments += 1

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Articles: {num_articles}")
    print(f"  Comments: {total_comments}")


def main():
    parser = argparse.ArgumentParser(description="Seed the blog store")
    parser.add_argument("--small", action="store_true", help="Use small dataset (5 articles)")
    parser.add_argument("--proxy", action="store_true", help="Write through the relay")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, force_proxy=args.proxy))


if __name__ == "__main__":
    main()
