"""
Admin Routes - job feed, categories and users (admin role)

POST /admin/ingest/schedule-daily - Queue today's category runs
POST /admin/ingest/process-due - Claim one due run and ingest it in background
POST /admin/ingest/category - Ingest one category now (oldest fetched if omitted)

GET /admin/categories - List job categories
POST /admin/categories - Create a category
PATCH /admin/categories/{category_id} - Change name, location or active flag
DELETE /admin/categories/{category_id} - Delete a category and its runs

PUT /admin/users/{user_id}/suspension - Suspend or reinstate a user
PUT /admin/users/{user_id}/plan - Put a user on a plan

The ingest operations are exposed to cron through scripts/run_ingest.py.
"""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends

from niena.api.deps import run_workflow
from niena.core.auth import get_current_admin
from niena.services import account_service, category_service, ingestion_service
from niena.schemas.schemas import (
    ScheduleDailyRequest, IngestCategoryRequest,
    CategoryCreate, CategoryUpdate, CategoryResponse,
    SuspensionUpdate, PlanUpdate, UserPlanResponse, MessageResponse
)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ============================================================
# JOB FEED
# ============================================================

@router.post("/ingest/schedule-daily")
async def schedule_daily(body: ScheduleDailyRequest = None, admin: dict = Depends(get_current_admin)):
    return ingestion_service.schedule_daily_runs(limit=body.limit if body else None)


@router.post("/ingest/process-due")
async def process_due(background_tasks: BackgroundTasks, admin: dict = Depends(get_current_admin)):
    """Claiming is synchronous; the ingest itself runs after the response."""
    def dispatch(run: dict) -> str:
        background_tasks.add_task(
            run_workflow,
            ingestion_service.get_ingestion_service().ingest_category,
            run["category_id"],
            run["run_id"]
        )
        return "dispatched"

    return ingestion_service.process_due_run(dispatch=dispatch)


@router.post("/ingest/category", status_code=202)
async def ingest_category(
    background_tasks: BackgroundTasks,
    body: IngestCategoryRequest = None,
    admin: dict = Depends(get_current_admin)
):
    category_id = body.category_id if body else None
    background_tasks.add_task(
        run_workflow, ingestion_service.get_ingestion_service().ingest_category, category_id
    )
    return {"accepted": True, "category_id": category_id}


# ============================================================
# CATEGORIES
# ============================================================

@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(admin: dict = Depends(get_current_admin)):
    return category_service.list_categories()


@router.post("/categories", response_model=CategoryResponse, status_code=201)
async def create_category(body: CategoryCreate, admin: dict = Depends(get_current_admin)):
    return category_service.create_category(body.category, body.location, body.active)


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: int, body: CategoryUpdate, admin: dict = Depends(get_current_admin)):
    return category_service.update_category(category_id, body.model_dump(exclude_unset=True))


@router.delete("/categories/{category_id}", response_model=MessageResponse)
async def delete_category(category_id: int, admin: dict = Depends(get_current_admin)):
    category_service.delete_category(category_id)
    return MessageResponse(message="Category deleted")


# ============================================================
# USERS
# ============================================================

@router.put("/users/{user_id}/suspension")
async def set_suspension(user_id: int, body: SuspensionUpdate, admin: dict = Depends(get_current_admin)):
    return account_service.set_user_suspension(user_id, body.is_suspended)


@router.put("/users/{user_id}/plan", response_model=UserPlanResponse)
async def update_plan(user_id: int, body: PlanUpdate, admin: dict = Depends(get_current_admin)):
    return account_service.update_user_plan(user_id, body.plan, body.expires_at)
