"""
Trainer workspace endpoints: student roster, training sessions, dashboard.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import List
import logging

from core.auth import ensure_student_access, require_trainer
from hooks import use_trainers
from schemas import (
    DashboardStats,
    NewStudent,
    NewTrainingSession,
    Profile,
    SessionStatus,
    Student,
    StudentStatus,
    TrainingSession,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/trainer", tags=["trainer"])


class StudentStatusUpdate(BaseModel):
    status: StudentStatus


class SessionStatusUpdate(BaseModel):
    status: SessionStatus


@router.get("/students", response_model=List[Student])
def list_students(trainer: Profile = Depends(require_trainer)):
    return use_trainers.use_students(trainer.id).unwrap()


@router.post("/students", response_model=Student, status_code=status.HTTP_201_CREATED)
def add_student(body: NewStudent, trainer: Profile = Depends(require_trainer)):
    """Create a student account. Fails with 403 once the plan's student limit is reached."""
    return use_trainers.use_add_student(trainer.id).mutate_or_raise(body)


@router.patch("/students/{student_id}/status", response_model=Student)
def update_student_status(student_id: str, body: StudentStatusUpdate,
                          trainer: Profile = Depends(require_trainer)):
    ensure_student_access(trainer, student_id)
    return use_trainers.use_update_student_status().mutate_or_raise(student_id, body.status)


@router.get("/sessions", response_model=List[TrainingSession])
def list_sessions(trainer: Profile = Depends(require_trainer)):
    return use_trainers.use_sessions(trainer.id).unwrap()


@router.get("/sessions/upcoming", response_model=List[TrainingSession])
def upcoming_sessions(trainer: Profile = Depends(require_trainer)):
    """Scheduled sessions in the next 7 days."""
    return use_trainers.use_upcoming_sessions(trainer.id).unwrap()


@router.post("/sessions", response_model=TrainingSession, status_code=status.HTTP_201_CREATED)
def create_session(body: NewTrainingSession, trainer: Profile = Depends(require_trainer)):
    ensure_student_access(trainer, body.student_id)
    return use_trainers.use_create_session(trainer.id).mutate_or_raise(body)


@router.patch("/sessions/{session_id}/status", response_model=TrainingSession)
def update_session_status(session_id: str, body: SessionStatusUpdate,
                          trainer: Profile = Depends(require_trainer)):
    sessions = use_trainers.use_sessions(trainer.id).unwrap()
    if not any(s.id == session_id for s in sessions):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return use_trainers.use_update_session_status().mutate_or_raise(session_id, body.status)


@router.get("/dashboard", response_model=DashboardStats)
def dashboard(trainer: Profile = Depends(require_trainer)):
    stats = use_trainers.use_dashboard_stats(trainer.id).unwrap()
    if stats is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trainer profile not found")
    return stats
