"""Job cards: work orders created from bookings and tracked by technicians."""
from __future__ import annotations

import os
import uuid

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app
from sqlalchemy import func
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..auth import Principal
from ..errors import ConflictError, ForbiddenError, NotFoundError, StorageError, ValidationError
from ..extensions import db
from ..models import JOB_CARD_STATUSES, PHOTO_TYPES, Booking, JobCard, JobCardPhoto, Staff, utc_now
from . import append_note, page_params, pagination
from . import events

ACTIVE_STATUSES = ("assigned", "in_progress")
PHOTO_SUBDIR = "job-cards"


def get_job_card_or_404(job_card_id: int) -> JobCard:
    job_card = db.session.get(JobCard, job_card_id)
    if job_card is None:
        raise NotFoundError("Job card not found")
    return job_card


def _get_technician(staff_id: int) -> Staff:
    staff = db.session.get(Staff, staff_id)
    if staff is None or not staff.is_active or staff.position != "technician":
        raise NotFoundError("Technician not found or not available")
    return staff


def _ensure_can_modify(job_card: JobCard, principal: Principal | None) -> None:
    """Technicians may only touch job cards assigned to them."""
    if principal is None or principal.role != "technician":
        return
    staff = Staff.query.filter_by(user_id=principal.user_id).first()
    if staff is None or job_card.assigned_technician_id != staff.staff_id:
        raise ForbiddenError("Job card is not assigned to you")


def create_job_card(booking_id: int, technician_id: int | None = None, notes: str | None = None) -> JobCard:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    if booking.status == "cancelled":
        raise ValidationError("Cannot create a job card for a cancelled booking")
    if booking.job_card is not None:
        raise ConflictError("Job card already exists for this booking")
    if technician_id is not None:
        _get_technician(technician_id)

    job_card = JobCard(booking_id=booking_id, assigned_technician_id=technician_id, status="assigned", notes=notes)
    db.session.add(job_card)
    db.session.commit()
    current_app.logger.info("Job card %s created for booking %s", job_card.job_card_id, booking_id)
    return job_card


def assign_technician(job_card_id: int, staff_id: int) -> JobCard:
    job_card = get_job_card_or_404(job_card_id)
    technician = _get_technician(staff_id)

    job_card.assigned_technician_id = technician.staff_id
    db.session.commit()
    current_app.logger.info("Job card %s assigned to technician %s", job_card_id, staff_id)
    return job_card


def update_status(
    job_card_id: int, status: str, notes: str | None = None, principal: Principal | None = None
) -> JobCard:
    """Set any job card status; timestamps are stamped only on first entry."""
    if status not in JOB_CARD_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(JOB_CARD_STATUSES)}", code="invalid_status")

    job_card = get_job_card_or_404(job_card_id)
    _ensure_can_modify(job_card, principal)

    old_status = job_card.status
    job_card.status = status
    if status == "in_progress" and job_card.start_time is None:
        job_card.start_time = utc_now()
    if status == "completed" and job_card.end_time is None:
        job_card.end_time = utc_now()
    job_card.notes = append_note(job_card.notes, notes)
    db.session.commit()

    current_app.logger.info("Job card %s status %s -> %s", job_card_id, old_status, status)
    if status == "delivered" and old_status != "delivered":
        events.publish(events.JOB_CARD_DELIVERED, job_card_id=job_card_id, booking_id=job_card.booking_id)
    return job_card


def _store_photo(file: FileStorage, filename: str) -> tuple[str, str | None]:
    """Save an upload to S3 when a bucket is configured, else under UPLOAD_FOLDER."""
    bucket_name = current_app.config.get("AWS_S3_BUCKET")
    if bucket_name:
        s3_key = f"{PHOTO_SUBDIR}/{filename}"
        try:
            s3_client = boto3.client("s3")
            s3_client.upload_fileobj(
                file.stream,
                bucket_name,
                s3_key,
                ExtraArgs={"ContentType": file.content_type or "image/jpeg"},
            )
        except (BotoCoreError, ClientError) as exc:
            current_app.logger.exception("Failed to upload job card photo to S3", exc_info=exc)
            raise StorageError("Photo upload failed") from exc
        return f"https://{bucket_name}.s3.amazonaws.com/{s3_key}", s3_key

    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], PHOTO_SUBDIR)
    os.makedirs(folder, exist_ok=True)
    file.save(os.path.join(folder, filename))
    return f"/uploads/{PHOTO_SUBDIR}/{filename}", None


def attach_photo(
    job_card_id: int, photo_type: str | None, file: FileStorage | None, principal: Principal | None = None
) -> JobCardPhoto:
    if file is None or not file.filename:
        raise ValidationError("No photo uploaded")
    if photo_type not in PHOTO_TYPES:
        raise ValidationError(f"photo_type must be one of: {', '.join(PHOTO_TYPES)}")

    job_card = get_job_card_or_404(job_card_id)
    _ensure_can_modify(job_card, principal)

    _, extension = os.path.splitext(secure_filename(file.filename))
    filename = f"{job_card_id}-{photo_type}-{uuid.uuid4().hex}{extension.lower()}"
    # The file lands before the row; an orphan is left behind if the insert fails.
    photo_url, s3_key = _store_photo(file, filename)

    photo = JobCardPhoto(job_card_id=job_card_id, photo_type=photo_type, photo_url=photo_url, s3_key=s3_key)
    db.session.add(photo)
    db.session.commit()
    current_app.logger.info("Stored %s photo %s for job card %s", photo_type, photo.photo_id, job_card_id)
    return photo


def list_job_cards(
    *,
    status: str | None = None,
    technician_id: int | None = None,
    page: int | None = 1,
    limit: int | None = 10,
) -> dict[str, object]:
    page, limit = page_params(page, limit)
    query = JobCard.query
    if status:
        query = query.filter(JobCard.status == status)
    if technician_id:
        query = query.filter(JobCard.assigned_technician_id == technician_id)

    total = query.count()
    job_cards = (
        query.order_by(JobCard.created_at.desc(), JobCard.job_card_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "job_cards": [job_card.to_dict() for job_card in job_cards],
        "pagination": pagination(page, limit, total),
    }


def get_job_card(job_card_id: int) -> dict[str, object]:
    job_card = get_job_card_or_404(job_card_id)
    data = job_card.to_dict(include_photos=True)
    data["booking"] = job_card.booking.to_dict() if job_card.booking else None
    return data


def technician_queue(staff_id: int, status: str | None = None) -> list[JobCard]:
    if db.session.get(Staff, staff_id) is None:
        raise NotFoundError("Staff member not found")
    query = JobCard.query.filter(JobCard.assigned_technician_id == staff_id)
    if status:
        query = query.filter(JobCard.status == status)
    return query.order_by(JobCard.created_at.desc()).all()


def available_technicians() -> list[dict[str, object]]:
    """Active technicians ordered by their current workload."""
    active_jobs = func.count(JobCard.job_card_id)
    rows = (
        db.session.query(Staff, active_jobs)
        .outerjoin(
            JobCard,
            (JobCard.assigned_technician_id == Staff.staff_id) & JobCard.status.in_(ACTIVE_STATUSES),
        )
        .filter(Staff.position == "technician", Staff.is_active.is_(True))
        .group_by(Staff.staff_id)
        .order_by(active_jobs.asc(), Staff.first_name.asc())
        .all()
    )
    return [{**staff.to_dict(), "active_jobs": count} for staff, count in rows]


def job_card_stats() -> dict[str, object]:
    counts = dict(db.session.query(JobCard.status, func.count(JobCard.job_card_id)).group_by(JobCard.status).all())

    durations = [
        (end - start).total_seconds() / 60
        for start, end in db.session.query(JobCard.start_time, JobCard.end_time).filter(
            JobCard.start_time.isnot(None), JobCard.end_time.isnot(None)
        )
    ]

    workload = (
        db.session.query(Staff, func.count(JobCard.job_card_id))
        .join(JobCard, JobCard.assigned_technician_id == Staff.staff_id)
        .group_by(Staff.staff_id)
        .all()
    )
    return {
        "total_job_cards": sum(counts.values()),
        "by_status": {status: counts.get(status, 0) for status in JOB_CARD_STATUSES},
        "avg_completion_minutes": round(sum(durations) / len(durations), 1) if durations else None,
        "technician_workload": [
            {"staff_id": staff.staff_id, "name": staff.full_name, "total_jobs": total} for staff, total in workload
        ],
    }
