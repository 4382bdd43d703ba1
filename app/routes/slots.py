"""Slots API: list own slots, create, edit, toggle availability, delete."""

from typing import List
from fastapi import APIRouter, Depends, Body, status
from sqlalchemy.orm import Session, sessionmaker

from ..database import get_db, get_session_factory
from ..models import User
from ..schemas import SlotOut, SlotCreate, SlotUpdate, AvailabilityUpdate
from ..auth import get_current_user
from ..services.directory import list_own_slots
from ..services.slots import SlotService

router = APIRouter(tags=["slots"])


def get_slot_service(session_factory: sessionmaker = Depends(get_session_factory)) -> SlotService:
    return SlotService(session_factory)


@router.get("/mine", response_model=List[SlotOut])
async def list_my_slots(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_own_slots(current_user.id, db)

@router.post("/create", response_model=SlotOut, status_code=status.HTTP_201_CREATED)
def create_slot(
    current_user: User = Depends(get_current_user),
    slot_service: SlotService = Depends(get_slot_service),
    slot_in: SlotCreate = Body(...),
):
    return slot_service.create_slot(
        current_user.id,
        title=slot_in.title,
        start_time=slot_in.start_time,
        end_time=slot_in.end_time,
        availability=slot_in.availability,
    )

@router.put("/update/{slot_id}", response_model=SlotOut)
def update_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    slot_service: SlotService = Depends(get_slot_service),
    slot_in: SlotUpdate = Body(...),
):
    return slot_service.update_slot(
        current_user.id,
        slot_id,
        title=slot_in.title,
        start_time=slot_in.start_time,
        end_time=slot_in.end_time,
    )

@router.put("/{slot_id}/availability", response_model=SlotOut)
def set_slot_availability(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    slot_service: SlotService = Depends(get_slot_service),
    update: AvailabilityUpdate = Body(...),
):
    return slot_service.set_availability(current_user.id, slot_id, update.availability)

@router.delete("/delete/{slot_id}")
def delete_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    slot_service: SlotService = Depends(get_slot_service),
):
    slot_service.delete_slot(current_user.id, slot_id)
    return {"success": True, "message": "Slot deleted"}
