from decimal import Decimal
from pydantic import BaseModel
from typing import Optional

class BookingOut(BaseModel):
    id: str
    parentId: str
    childId: str
    activityId: str
    activityName: Optional[str] = None
    amount: Decimal
    paymentMethod: str
    status: str
    activityAt: str
    notes: str = ""
