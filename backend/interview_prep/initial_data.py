import asyncio
import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep import crud
from interview_prep.core.config import Settings
from interview_prep.core.db import init_db, make_engine, make_session_factory
from interview_prep.models import Category, Topic

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CATEGORIES = [
    {
        "slug": "architecture",
        "name": "Software Architecture",
        "description": "Master system design from simple applications to complex distributed systems",
        "icon": "🏗️",
        "order_index": 1,
    },
    {
        "slug": "backend",
        "name": "Backend Development",
        "description": "Learn OOP, design patterns, and backend development in C#, Java, Python, or Node.js",
        "icon": "💻",
        "order_index": 2,
    },
    {
        "slug": "frontend",
        "name": "Frontend Development",
        "description": "Build modern user interfaces with React, hooks, and advanced patterns",
        "icon": "🎨",
        "order_index": 3,
    },
]

# category slug -> (slug, name, description, difficulty, estimated minutes)
TOPICS = {
    "architecture": [
        ("basic-architecture", "Basic Architecture Concepts", "Understanding fundamental software architecture principles", "beginner", 180),
        ("scalability-performance", "Scalability & Performance", "Learn how to scale applications and optimize performance", "intermediate", 240),
        ("microservices", "Microservices Architecture", "Deep dive into microservices patterns and practices", "advanced", 300),
        ("system-design-cases", "System Design Case Studies", "Real-world system design interview questions", "expert", 360),
    ],
    "backend": [
        ("oop-fundamentals", "OOP Fundamentals", "Master Object-Oriented Programming concepts", "beginner", 200),
        ("design-patterns", "Design Patterns", "Learn the Gang of Four design patterns", "intermediate", 280),
        ("clean-architecture", "Clean Architecture", "Build maintainable and testable applications", "advanced", 320),
        ("distributed-systems", "Distributed Systems", "Master distributed computing patterns", "expert", 400),
    ],
    "frontend": [
        ("react-basics", "React Basics", "Get started with React and JSX", "beginner", 150),
        ("react-hooks", "React Hooks", "Master useState, useEffect, and custom hooks", "intermediate", 200),
        ("advanced-react", "Advanced React Patterns", "Learn compound components, render props, and more", "advanced", 250),
        ("react-performance", "React Performance", "Optimize React applications for production", "expert", 300),
    ],
}


async def seed_content(session: AsyncSession) -> int:
    """Insert the base categories and topics that are not there yet.

    :returns: Number of rows inserted.
    """
    inserted = 0
    for data in CATEGORIES:
        category = await crud.get_category_by_slug(session=session, slug=data["slug"])
        if not category:
            category = await crud.create_category(session=session, category=Category(**data))
            inserted += 1

        for order_index, (slug, name, description, difficulty, minutes) in enumerate(
            TOPICS[category.slug], start=1
        ):
            if await crud.get_topic_by_slug(session=session, slug=slug):
                continue
            await crud.create_topic(
                session=session,
                topic=Topic(
                    category_id=category.id,
                    slug=slug,
                    name=name,
                    description=description,
                    difficulty_level=difficulty,
                    estimated_time=minutes,
                    order_index=order_index,
                ),
            )
            inserted += 1
    return inserted


async def init(settings: Settings) -> None:
    engine = make_engine(settings.DATABASE_URL)
    try:
        await init_db(engine)
        async with make_session_factory(engine)() as session:
            inserted = await seed_content(session)
            await session.commit()
        logger.info("Inserted %d categories and topics", inserted)
    finally:
        await engine.dispose()


def main() -> None:
    logger.info("Creating initial data")
    asyncio.run(init(Settings()))
    logger.info("Initial data created")


if __name__ == "__main__":
    main()
