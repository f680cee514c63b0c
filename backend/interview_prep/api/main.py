from fastapi import APIRouter

from interview_prep.api.routes import auth, categories, lessons, progress, quiz, topics

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(categories.router)
api_router.include_router(topics.router)
api_router.include_router(lessons.router)
api_router.include_router(progress.router)
api_router.include_router(quiz.router)


@api_router.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
