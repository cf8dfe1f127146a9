"""Job card routes under /api/job-cards."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from .auth import current_principal, login_required, roles_required
from .schemas import JobCardAssign, JobCardCreate, JobCardStatusUpdate, parse_body
from .services import job_card_service

bp_job_cards = Blueprint("job_cards", __name__, url_prefix="/api/job-cards")


@bp_job_cards.get("")
@login_required
def list_job_cards() -> tuple[dict[str, object], int]:
    result = job_card_service.list_job_cards(
        status=request.args.get("status") or None,
        technician_id=request.args.get("technician_id", type=int),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
    )
    return jsonify(result), 200


@bp_job_cards.post("")
@roles_required("admin", "manager")
def create_job_card() -> tuple[dict[str, object], int]:
    """Open a job card for a booking.
    ---
    tags:
      - Job Cards
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [booking_id]
          properties:
            booking_id:
              type: integer
            technician_id:
              type: integer
            notes:
              type: string
    responses:
      201:
        description: Job card created with status assigned
      400:
        description: Booking is cancelled
      404:
        description: Booking or technician not found
      409:
        description: Booking already has a job card
    """
    payload = parse_body(JobCardCreate)
    job_card = job_card_service.create_job_card(payload.booking_id, payload.technician_id, payload.notes)
    return jsonify({"message": "Job card created successfully", "job_card": job_card.to_dict()}), 201


@bp_job_cards.get("/<int:job_card_id>")
@login_required
def get_job_card(job_card_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"job_card": job_card_service.get_job_card(job_card_id)}), 200


@bp_job_cards.put("/<int:job_card_id>/status")
@roles_required("admin", "manager", "technician")
def update_job_card_status(job_card_id: int) -> tuple[dict[str, object], int]:
    """Set a job card's status and append notes.
    ---
    tags:
      - Job Cards
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            status:
              type: string
              enum: [assigned, in_progress, qc_check, completed, delivered]
            notes:
              type: string
    responses:
      200:
        description: Status updated
      400:
        description: Unknown status
      403:
        description: Technician updating a job card assigned to someone else
    """
    payload = parse_body(JobCardStatusUpdate)
    job_card = job_card_service.update_status(job_card_id, payload.status, payload.notes, current_principal())
    return jsonify({"message": "Job card status updated successfully", "job_card": job_card.to_dict()}), 200


@bp_job_cards.put("/<int:job_card_id>/assign")
@roles_required("admin", "manager")
def assign_technician(job_card_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(JobCardAssign)
    job_card = job_card_service.assign_technician(job_card_id, payload.technician_id)
    return jsonify({"message": "Technician assigned successfully", "job_card": job_card.to_dict()}), 200


@bp_job_cards.post("/<int:job_card_id>/photos")
@roles_required("admin", "manager", "technician")
def upload_photo(job_card_id: int) -> tuple[dict[str, object], int]:
    """Multipart upload: ``photo`` file plus ``photo_type`` (before, during, after)."""
    photo = job_card_service.attach_photo(
        job_card_id,
        request.form.get("photo_type"),
        request.files.get("photo"),
        current_principal(),
    )
    return jsonify({"message": "Photo uploaded successfully", "photo": photo.to_dict()}), 201


@bp_job_cards.get("/stats/overview")
@login_required
def job_card_stats() -> tuple[dict[str, object], int]:
    return jsonify({"stats": job_card_service.job_card_stats()}), 200


@bp_job_cards.get("/technician/<int:staff_id>")
@login_required
def technician_job_cards(staff_id: int) -> tuple[dict[str, object], int]:
    job_cards = job_card_service.technician_queue(staff_id, request.args.get("status") or None)
    return jsonify({"job_cards": [job_card.to_dict() for job_card in job_cards]}), 200
