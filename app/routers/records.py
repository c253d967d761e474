from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.record import Record
from app.models.user import User
from app.routers.deps import get_current_user
from app.schemas.record import RecordCreate, RecordRead

router = APIRouter(prefix="/records", tags=["records"])


@router.post("", response_model=RecordRead, status_code=status.HTTP_201_CREATED)
def create_record(
    payload: RecordCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Record:
    record = Record(owner_id=current_user.id, name=payload.name, data=payload.data)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@router.get("", response_model=list[RecordRead])
def list_records(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)) -> list[Record]:
    stmt = select(Record).where(Record.owner_id == current_user.id).order_by(Record.created_at, Record.id)
    return list(db.scalars(stmt).all())


@router.get("/{record_id}", response_model=RecordRead)
def get_record(
    record_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Record:
    record = db.scalar(select(Record).where(Record.id == record_id, Record.owner_id == current_user.id))
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return record
