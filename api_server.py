"""FastAPI REST API server for the Medication Reminder Service.

This module is the schedule store, reminder-attempt tracker and escalation
backend that reminder clients talk to. The caller is identified by the
user_id query parameter.

IMPORTANT: Pydantic automatically converts ISO datetime strings to datetime objects.
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from typing import List

import crud
import schemas
import database
import escalation
import sms_gateway
from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'api.log')

# Create FastAPI application
app = FastAPI(
    title="Medication Reminder Service API",
    description="Medication schedules, reminder attempt tracking and family SMS escalation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def require_schedule_item(item):
    if not item:
        raise HTTPException(status_code=404, detail="Schedule item not found")
    return item


@app.get("/")
def root():
    """Root endpoint - service information"""
    return {
        "service": "Medication Reminder Service API",
        "version": "1.0.0",
        "status": "healthy",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "schedule": "/schedule/today",
            "sms": "/sms/logs"
        }
    }


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "medication_reminder_service",
        "database": settings.DATABASE_URL.split("://")[0],
        "sms_configured": sms_gateway.get_sms_gateway().is_configured
    }


@app.post("/users", response_model=schemas.UserResponse, status_code=201)
def create_user(
    user: schemas.UserCreate,
    db: Session = Depends(database.get_db)
):
    """Create a user profile.

    Request body example:
    ```json
    {
        "name": "Asha",
        "phone": "+919876543210",
        "sms_notifications_enabled": true,
        "missed_reminder_threshold": 3
    }
    ```
    """
    try:
        return crud.create_user(db, user.model_dump())
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Error creating user: {str(e)}")


@app.get("/users/{user_id}", response_model=schemas.UserResponse)
def get_user(user_id: str, db: Session = Depends(database.get_db)):
    """Get a user profile by ID."""
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.put("/users/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: str,
    updates: schemas.UserUpdate,
    db: Session = Depends(database.get_db)
):
    """Update a user profile. Only provided fields are changed."""
    user = crud.update_user(db, user_id, updates.model_dump(exclude_unset=True))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.post("/medicines", response_model=schemas.MedicineResponse, status_code=201)
def create_medicine(
    medicine: schemas.MedicineCreate,
    db: Session = Depends(database.get_db)
):
    """Create a medicine and generate its schedule for the coming days.

    Request body example:
    ```json
    {
        "user_id": "6f1c...",
        "name": "Metformin",
        "dosage": "500mg",
        "frequency": "daily",
        "times": ["08:00", "20:00"]
    }
    ```

    Times are local to the configured TIMEZONE. Times already past today get
    no item for today.
    """
    if not crud.get_user(db, medicine.user_id):
        raise HTTPException(status_code=404, detail="User not found")
    try:
        return crud.create_medicine(db, medicine.model_dump())
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Error creating medicine: {str(e)}")


@app.get("/medicines", response_model=List[schemas.MedicineResponse])
def list_medicines(
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """List a user's medicines, newest first."""
    return crud.get_medicines(db, user_id)


@app.delete("/medicines/{medicine_id}", status_code=200)
def delete_medicine(
    medicine_id: str,
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """Delete a medicine along with its schedule and missed counters."""
    if not crud.delete_medicine(db, medicine_id, user_id):
        raise HTTPException(status_code=404, detail="Medicine not found")
    return {"message": "Medicine deleted successfully", "medicine_id": medicine_id}


@app.patch("/medicines/{medicine_id}/active", response_model=schemas.MedicineResponse)
def set_medicine_active(
    medicine_id: str,
    update: schemas.MedicineActiveUpdate,
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """Pause or resume a medicine.

    Request body example:
    ```json
    {"active": false}
    ```

    Pausing drops its upcoming pending doses; resuming schedules them again.
    """
    medicine = crud.set_medicine_active(db, medicine_id, user_id, update.active)
    if not medicine:
        raise HTTPException(status_code=404, detail="Medicine not found")
    return medicine


@app.get("/schedule/today", response_model=List[schemas.ScheduleItem])
def list_today_schedule(
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """Today's schedule items for a user, earliest first."""
    return crud.list_today_schedule(db, user_id)


@app.get("/schedule/history", response_model=List[schemas.ScheduleItem])
def get_schedule_history(
    user_id: str = Query(..., description="User ID"),
    period: str = Query("week", pattern="^(week|month)$", description="History period"),
    db: Session = Depends(database.get_db)
):
    """Taken and missed items for the last week or month, newest first."""
    return crud.get_schedule_history(db, user_id, period)


@app.get("/stats/{user_id}", response_model=schemas.AdherenceReport)
def get_adherence_stats(
    user_id: str,
    period: str = Query("week", pattern="^(week|month)$", description="Report period"),
    db: Session = Depends(database.get_db)
):
    """Adherence report for a user.

    Counts taken and missed doses over the last week or month, overall and
    per medicine. Rates are whole percentages of decided doses.
    """
    return crud.get_adherence_stats(db, user_id, period)


@app.post("/schedule/{schedule_id}/taken", response_model=schemas.ScheduleItem)
def mark_taken(
    schedule_id: str,
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """Mark a dose as taken. Taking a missed (snoozed) dose is allowed."""
    item = require_schedule_item(crud.mark_taken(db, schedule_id, user_id))
    logger.info(f"Schedule item {schedule_id} marked taken")
    return item


@app.post("/schedule/{schedule_id}/missed", response_model=schemas.ScheduleItem)
def mark_missed(
    schedule_id: str,
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """Mark a pending dose as missed.

    A dose that is already taken stays taken and the request gets 409.
    """
    try:
        item = require_schedule_item(crud.mark_missed(db, schedule_id, user_id))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info(f"Schedule item {schedule_id} marked missed")
    return item


@app.post("/reminder-attempts/increment", response_model=schemas.ReminderAttemptResponse)
def increment_reminder_attempt(
    attempt: schemas.AttemptIncrement,
    db: Session = Depends(database.get_db)
):
    """Add one to the item's missed count, creating the counter at 1."""
    require_schedule_item(crud.get_schedule_item(db, attempt.schedule_id, attempt.user_id))
    return crud.increment_missed_reminder(db, attempt.schedule_id, attempt.medicine_id, attempt.user_id)


@app.post("/reminder-attempts/reset")
def reset_reminder_attempt(
    attempt: schemas.AttemptReset,
    db: Session = Depends(database.get_db)
):
    """Reset the item's missed count to zero. Idempotent."""
    reset = crud.reset_missed_reminder(db, attempt.schedule_id, attempt.user_id)
    return {
        "schedule_id": attempt.schedule_id,
        "missed_count": 0,
        "existed": reset is not None
    }


@app.get("/reminder-attempts/missed", response_model=List[schemas.MissedReminderResponse])
def list_missed_reminders(
    user_id: str = Query(..., description="User ID"),
    threshold: int = Query(3, ge=1, description="Minimum missed count"),
    db: Session = Depends(database.get_db)
):
    """Doses whose missed count reached the threshold."""
    return crud.get_missed_reminders(db, user_id, threshold)


@app.post("/contacts", response_model=schemas.ContactResponse, status_code=201)
def add_contact(
    contact: schemas.ContactCreate,
    db: Session = Depends(database.get_db)
):
    """Add a family contact. A user can have at most two."""
    if not crud.get_user(db, contact.user_id):
        raise HTTPException(status_code=404, detail="User not found")
    try:
        return crud.add_contact(db, contact.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/contacts", response_model=List[schemas.ContactResponse])
def list_contacts(
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """List a user's family contacts, primary first."""
    return crud.get_contacts(db, user_id)


@app.delete("/contacts/{contact_id}", status_code=200)
def delete_contact(
    contact_id: str,
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(database.get_db)
):
    """Remove a family contact."""
    if not crud.delete_contact(db, contact_id, user_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    return {"message": "Contact deleted successfully", "contact_id": contact_id}


@app.post("/sms/instant", response_model=schemas.EscalationResult)
def send_instant_sms(
    request: schemas.InstantSmsRequest,
    db: Session = Depends(database.get_db),
    gateway: sms_gateway.TwilioSmsGateway = Depends(sms_gateway.get_sms_gateway)
):
    """Tell the user's family contacts that a reminder was dismissed.

    Disabled SMS, missing gateway credentials or no contacts are reported
    as "skipped", not as errors.
    """
    return escalation.send_instant_sms(db, gateway, request.user_id, request.medicine_name, request.dosage)


@app.post("/sms/sweep", response_model=schemas.SweepResult)
def run_escalation_sweep(
    db: Session = Depends(database.get_db),
    gateway: sms_gateway.TwilioSmsGateway = Depends(sms_gateway.get_sms_gateway)
):
    """Run one missed-threshold sweep now."""
    return escalation.run_escalation_sweep(db, gateway)


@app.get("/sms/logs", response_model=List[schemas.SmsLogResponse])
def list_sms_logs(
    user_id: str = Query(..., description="User ID"),
    limit: int = Query(50, ge=1, le=1000, description="Maximum number of results"),
    db: Session = Depends(database.get_db)
):
    """SMS delivery logs for a user, newest first."""
    return crud.get_sms_logs(db, user_id, limit)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info"
    )
