"""Generate shared drawing metadata for topics ahead of time.

Topics that already have a reference image and guide are skipped, so the
script is safe to run repeatedly. It reuses the application's
`DATABASE_DIR`, `MEDIA_DIR` and `OPENAI_API_KEY` settings.

Run: `python prewarm_topics.py apple cup cat` or, with no arguments, warm
      every topic of the default groups.
"""
import argparse
import asyncio
from typing import Dict, Iterable

from dotenv import load_dotenv
from openai import AsyncOpenAI

from dal.topic_metadata_dal import TopicMetadataDAL
from services.exploration.topic_groups import DEFAULT_TOPIC_GROUPS
from services.image_store import MediaStorage, default_media_dir
from services.metadata_cache import TopicMetadataCache
from services.openai.generative_client import GenerativeClient
from services.thumbnail_generator import ThumbnailGenerator
from utils.database_init import AsyncDatabaseInitializer


async def prewarm(cache: TopicMetadataCache, topics: Iterable[str]) -> Dict[str, str]:
    """Make sure each topic has metadata; return the final status per topic.

    Topics are handled one at a time to stay within image model rate limits.
    """
    statuses: Dict[str, str] = {}
    for topic in topics:
        if await cache.get(topic) is not None:
            print(f"{topic}: already present, skipped")
        else:
            await cache.wait(topic)
        status = await cache.status(topic)
        statuses[topic] = status.value
        print(f"{topic}: {status.value}")
    return statuses


async def main(topics: Iterable[str]) -> None:
    """Build the metadata cache from the environment and warm `topics`."""
    openai_client = AsyncOpenAI()
    cache = TopicMetadataCache(
        TopicMetadataDAL(AsyncDatabaseInitializer()),
        GenerativeClient(openai_client),
        MediaStorage(default_media_dir()),
        ThumbnailGenerator(),
    )
    try:
        await prewarm(cache, topics)
    finally:
        await cache.aclose()
        await openai_client.close()


if __name__ == "__main__":
    load_dotenv()
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("topics", nargs="*", help="topic names; defaults to every default-group topic")
    args = parser.parse_args()
    default_topics = [topic for topics in DEFAULT_TOPIC_GROUPS.values() for topic in topics]
    asyncio.run(main(args.topics or default_topics))
