from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from bookon.db.session import get_db
from bookon.api.deps import STAFF_ROLES, get_current_user
from bookon.models.activity import Activity
from bookon.models.booking import Booking
from bookon.models.user import User
from bookon.schemas.booking import BookingOut

router = APIRouter(tags=["bookings"])

def _booking_out(b: Booking, activity: Activity | None) -> BookingOut:
    return BookingOut(
        id=b.id,
        parentId=b.parent_id,
        childId=b.child_id,
        activityId=b.activity_id,
        activityName=activity.name if activity else None,
        amount=b.amount,
        paymentMethod=b.payment_method,
        status=b.status,
        activityAt=b.activity_at.isoformat(),
        notes=b.notes or "",
    )

@router.get("/bookings", response_model=list[BookingOut])
def list_my_bookings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rows = db.query(Booking).filter(Booking.parent_id == user.id).order_by(Booking.activity_at.desc()).limit(200).all()
    return [_booking_out(b, db.get(Activity, b.activity_id)) for b in rows]

@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = db.get(Booking, booking_id)
    # Parents only see their own bookings; a foreign id looks the same as a missing one.
    if not b or (user.role not in STAFF_ROLES and b.parent_id != user.id):
        raise HTTPException(status_code=404, detail="Not found")
    return _booking_out(b, db.get(Activity, b.activity_id))
