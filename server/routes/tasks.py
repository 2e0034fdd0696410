from typing import List, Optional
from datetime import datetime
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import case
from sqlalchemy.orm import Session
from server.schemas import TaskCreate, TaskResponse, TaskUpdate
from server.models import Task, User
from server.enums import TaskPriority
from server.dependencies import get_db, get_current_user
from server.stores import get_owned_task

logger = logging.getLogger(__name__)

router = APIRouter()

PRIORITY_RANK = case(
    (Task.priority == TaskPriority.high, 3),
    (Task.priority == TaskPriority.medium, 2),
    else_=1,
)

SORT_ORDERS = {
    "deadline": (Task.deadline.asc(),),
    "priority": (PRIORITY_RANK.desc(), Task.deadline.asc()),
    "created_at": (Task.created_at.desc(),),
}

# =========================================================
# TASK ENDPOINTS
# =========================================================
@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = Task(**task_data.dict(), owner_id=current_user.id)
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info(f"Task {task.id} created by user {current_user.id}, deadline {task.deadline.isoformat()}")
    return task

@router.get("/", response_model=List[TaskResponse])
def get_tasks(
    completed: Optional[bool] = Query(None),
    sort_by: str = Query("deadline", pattern="^(deadline|priority|created_at)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = db.query(Task).filter(Task.owner_id == current_user.id)
    if completed is not None:
        query = query.filter(Task.completed.is_(completed))
    return query.order_by(*SORT_ORDERS[sort_by]).all()

@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = get_owned_task(db, current_user.id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task

@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    task_data: TaskUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = get_owned_task(db, current_user.id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    update_data = task_data.dict(exclude_unset=True)
    for field in ("title", "deadline", "reminder_minutes", "priority", "completed"):
        if field in update_data and update_data[field] is None:
            raise HTTPException(status_code=422, detail=f"{field} cannot be null")

    for field, value in update_data.items():
        setattr(task, field, value)

    task.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(task)
    return task

@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = get_owned_task(db, current_user.id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    db.delete(task)
    db.commit()
    return None
