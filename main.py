import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings
from schemas import (
    Category,
    CategoryCreate,
    CategoryWithCount,
    FeatureUpdate,
    StatusUpdate,
    Story,
    StoryCreate,
    StoryStatus,
)
from storage import Storage, StorageError, create_storage

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    # basicConfig is a no-op when handlers exist (uvicorn reload, pytest)
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# Dependencies

def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


router = APIRouter(prefix="/api")


# Public endpoints
@router.get("/stories", response_model=List[Story])
async def list_stories(
    category: Optional[str] = None,
    search: Optional[str] = None,
    storage: Storage = Depends(get_storage),
):
    if search:
        stories = await storage.search_stories(search)
        if category:
            stories = [s for s in stories if s.category == category]
        return stories
    if category:
        return await storage.get_stories_by_category(category)
    return await storage.get_stories(StoryStatus.APPROVED.value)


@router.get("/stories/featured", response_model=List[Story])
async def featured_stories(
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return await storage.get_featured_stories(limit=settings.featured_limit)


@router.get("/stories/{story_id}", response_model=Story)
async def get_story(story_id: int, storage: Storage = Depends(get_storage)):
    story = await storage.get_story(story_id)
    if story is None or story.status != StoryStatus.APPROVED.value:
        raise HTTPException(status_code=404, detail="Story not found")
    return story


@router.post("/stories", response_model=Story, status_code=201)
async def submit_story(
    payload: StoryCreate,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    story = await storage.create_story(payload)
    logger.info("Story %d submitted in category %s", story.id, story.category)
    if settings.auto_approve_stories:
        story = await storage.update_story_status(story.id, StoryStatus.APPROVED.value) or story
        logger.info("Story %d auto-approved", story.id)
    return story


@router.get("/categories", response_model=List[CategoryWithCount])
async def list_categories(storage: Storage = Depends(get_storage)):
    categories = await storage.get_categories()
    result = []
    for category in categories:
        stories = await storage.get_stories_by_category(category.slug)
        result.append(CategoryWithCount(**category.model_dump(), storyCount=len(stories)))
    return result


@router.post("/categories", response_model=Category, status_code=201)
async def add_category(payload: CategoryCreate, storage: Storage = Depends(get_storage)):
    category = await storage.create_category(payload)
    logger.info("Category %s created", category.slug)
    return category


# Admin endpoints
@router.get("/admin/stories", response_model=List[Story])
async def admin_list_stories(status: Optional[StoryStatus] = None, storage: Storage = Depends(get_storage)):
    return await storage.get_stories(status.value if status else None)


@router.get("/admin/stories/pending", response_model=List[Story])
async def pending_stories(storage: Storage = Depends(get_storage)):
    return await storage.get_stories(StoryStatus.PENDING.value)


@router.patch("/stories/{story_id}/status", response_model=Story)
async def update_status(story_id: int, payload: StatusUpdate, storage: Storage = Depends(get_storage)):
    story = await storage.update_story_status(story_id, payload.status.value)
    if story is None:
        raise HTTPException(status_code=404, detail="Story not found")
    logger.info("Story %d marked %s", story_id, story.status)
    return story


@router.patch("/stories/{story_id}/feature", response_model=Story)
async def update_feature(story_id: int, payload: FeatureUpdate, storage: Storage = Depends(get_storage)):
    story = await storage.set_story_featured(story_id, payload.featured)
    if story is None:
        raise HTTPException(status_code=404, detail="Story not found")
    logger.info("Story %d featured=%s", story_id, story.featured)
    return story


@router.delete("/stories/{story_id}", status_code=204)
async def delete_story(story_id: int, storage: Storage = Depends(get_storage)):
    if not await storage.delete_story(story_id):
        raise HTTPException(status_code=404, detail="Story not found")
    logger.info("Story %d deleted", story_id)
    return Response(status_code=204)


# Error handlers

async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})


def create_app(settings: Optional[Settings] = None, storage: Optional[Storage] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="Story Circle API")
    app.state.settings = settings
    app.state.storage = storage if storage is not None else create_storage(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)

    @app.get("/")
    def root():
        return {"message": "Story Circle API running", "storage": app.state.storage.name}

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
