"""HTTP routes: health, auth, customers, catalog and staff."""
from __future__ import annotations

from flask import Blueprint, Flask, current_app, jsonify, request, send_from_directory
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .auth import build_token, current_principal, login_required, roles_required
from .extensions import db
from .schemas import (CategoryCreate, CustomerCreate, CustomerUpdate, LoginRequest,
                      PackageCreate, ServiceCreate, ServiceUpdate, StaffCreate,
                      StaffUpdate, VehicleCreate, parse_body)
from .services import catalog_service, customer_service, job_card_service, staff_service

health_bp = Blueprint("health", __name__)
bp = Blueprint("api", __name__, url_prefix="/api")

MANAGERS = ("admin", "manager")
FRONT_DESK = ("admin", "manager", "customer_service")


@health_bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
    """
    return jsonify({"status": "ok"}), 200


@health_bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@health_bp.get("/uploads/<path:filename>")
def uploaded_file(filename: str):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)


# =============== AUTH ==================
@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate a staff account by username (or email) and password.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            username:
              type: string
            password:
              type: string
          required:
            - username
            - password
    responses:
      200:
        description: Login successful, returns access token
      400:
        description: Missing username or password
      401:
        description: Invalid credentials or inactive account
    """
    payload = parse_body(LoginRequest)
    user = staff_service.authenticate(payload.username, payload.password)
    token = build_token(user.user_id, user.role)

    user_data = user.to_dict_basic()
    if user.staff is not None:
        user_data["staff_id"] = user.staff.staff_id
        user_data["name"] = user.staff.full_name
    return jsonify({"token": token, "user": user_data}), 200


@bp.get("/auth/profile")
@login_required
def get_profile() -> tuple[dict[str, object], int]:
    """Return the authenticated user's account and staff record."""
    principal = current_principal()
    return jsonify({"user": staff_service.profile(principal.user_id)}), 200


# =============== CUSTOMERS ==================
@bp.get("/customers")
@login_required
def list_customers() -> tuple[dict[str, object], int]:
    """List customers with optional search over name, phone and email.
    ---
    tags:
      - Customers
    parameters:
      - in: query
        name: search
        type: string
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
    responses:
      200:
        description: Paginated customers
    """
    result = customer_service.list_customers(
        search=request.args.get("search"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
    )
    return jsonify(result), 200


@bp.get("/customers/<int:customer_id>")
@login_required
def get_customer(customer_id: int) -> tuple[dict[str, object], int]:
    customer = customer_service.get_customer_or_404(customer_id)
    data = customer.to_dict(include_vehicles=True)
    data["bookings"] = [booking.to_dict() for booking in customer.bookings]
    return jsonify({"customer": data}), 200


@bp.post("/customers")
@roles_required(*FRONT_DESK)
def create_customer() -> tuple[dict[str, object], int]:
    payload = parse_body(CustomerCreate)
    customer = customer_service.create_customer(**payload.model_dump())
    return jsonify({"message": "Customer created successfully", "customer": customer.to_dict(include_vehicles=True)}), 201


@bp.put("/customers/<int:customer_id>")
@roles_required(*FRONT_DESK)
def update_customer(customer_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(CustomerUpdate)
    customer = customer_service.update_customer(customer_id, **payload.model_dump(exclude_unset=True))
    return jsonify({"message": "Customer updated successfully", "customer": customer.to_dict()}), 200


@bp.delete("/customers/<int:customer_id>")
@roles_required(*MANAGERS)
def delete_customer(customer_id: int) -> tuple[dict[str, str], int]:
    customer_service.delete_customer(customer_id)
    return jsonify({"message": "Customer deleted successfully"}), 200


@bp.get("/customers/<int:customer_id>/vehicles")
@login_required
def list_vehicles(customer_id: int) -> tuple[dict[str, object], int]:
    customer = customer_service.get_customer_or_404(customer_id)
    return jsonify({"vehicles": [vehicle.to_dict() for vehicle in customer.vehicles]}), 200


@bp.post("/customers/<int:customer_id>/vehicles")
@roles_required(*FRONT_DESK)
def add_vehicle(customer_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(VehicleCreate)
    vehicle = customer_service.add_vehicle(customer_id, **payload.model_dump())
    return jsonify({"message": "Vehicle added successfully", "vehicle": vehicle.to_dict()}), 201


# =============== SERVICE CATALOG ==================
@bp.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    """Public catalog of active services.
    ---
    tags:
      - Services
    parameters:
      - in: query
        name: category_id
        type: integer
      - in: query
        name: search
        type: string
    responses:
      200:
        description: Active services ordered by name
    """
    services = catalog_service.list_services(
        category_id=request.args.get("category_id", type=int),
        search=request.args.get("search"),
    )
    return jsonify({"services": [service.to_dict() for service in services]}), 200


@bp.get("/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"service": catalog_service.get_service_or_404(service_id).to_dict()}), 200


@bp.post("/services")
@roles_required(*MANAGERS)
def create_service() -> tuple[dict[str, object], int]:
    payload = parse_body(ServiceCreate)
    service = catalog_service.create_service(**payload.model_dump())
    return jsonify({"message": "Service created successfully", "service": service.to_dict()}), 201


@bp.put("/services/<int:service_id>")
@roles_required(*MANAGERS)
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(ServiceUpdate)
    service = catalog_service.update_service(service_id, **payload.model_dump(exclude_unset=True))
    return jsonify({"message": "Service updated successfully", "service": service.to_dict()}), 200


@bp.delete("/services/<int:service_id>")
@roles_required(*MANAGERS)
def deactivate_service(service_id: int) -> tuple[dict[str, object], int]:
    service = catalog_service.deactivate_service(service_id)
    return jsonify({"message": "Service deactivated", "service": service.to_dict()}), 200


@bp.get("/services/categories")
def list_categories() -> tuple[dict[str, object], int]:
    categories = catalog_service.list_categories()
    return jsonify({"categories": [category.to_dict() for category in categories]}), 200


@bp.post("/services/categories")
@roles_required(*MANAGERS)
def create_category() -> tuple[dict[str, object], int]:
    payload = parse_body(CategoryCreate)
    category = catalog_service.create_category(**payload.model_dump())
    return jsonify({"message": "Category created successfully", "category": category.to_dict()}), 201


@bp.get("/services/packages")
def list_packages() -> tuple[dict[str, object], int]:
    packages = catalog_service.list_packages()
    return jsonify({"packages": [package.to_dict() for package in packages]}), 200


@bp.post("/services/packages")
@roles_required(*MANAGERS)
def create_package() -> tuple[dict[str, object], int]:
    payload = parse_body(PackageCreate)
    package = catalog_service.create_package(
        name=payload.name,
        description=payload.description,
        price=payload.price,
        validity_days=payload.validity_days,
        services=[(item.service_id, item.quantity) for item in payload.services],
    )
    return jsonify({"message": "Package created successfully", "package": package.to_dict()}), 201


# =============== STAFF ==================
@bp.get("/staff")
@login_required
def list_staff() -> tuple[dict[str, list[dict[str, object]]], int]:
    staff = staff_service.list_staff(position=request.args.get("position"), search=request.args.get("search"))
    return jsonify({"staff": [member.to_dict() for member in staff]}), 200


@bp.get("/staff/technicians/available")
@login_required
def available_technicians() -> tuple[dict[str, object], int]:
    """Active technicians with their count of assigned and in-progress jobs.
    ---
    tags:
      - Staff
    responses:
      200:
        description: Technicians ordered by workload, lightest first
    """
    return jsonify({"technicians": job_card_service.available_technicians()}), 200


@bp.get("/staff/<int:staff_id>")
@login_required
def get_staff(staff_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"staff": staff_service.get_staff_or_404(staff_id).to_dict()}), 200


@bp.post("/staff")
@roles_required(*MANAGERS)
def create_staff() -> tuple[dict[str, object], int]:
    """Create a staff member together with their login account.
    ---
    tags:
      - Staff
    security:
      - Bearer: []
    responses:
      201:
        description: Staff member and user account created
      400:
        description: Invalid payload
      409:
        description: Username, email or phone already in use
    """
    payload = parse_body(StaffCreate)
    staff = staff_service.create_staff(**payload.model_dump())
    return jsonify({"message": "Staff member created successfully", "staff": staff.to_dict()}), 201


@bp.put("/staff/<int:staff_id>")
@roles_required(*MANAGERS)
def update_staff(staff_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(StaffUpdate)
    staff = staff_service.update_staff(staff_id, **payload.model_dump(exclude_unset=True))
    return jsonify({"message": "Staff member updated successfully", "staff": staff.to_dict()}), 200


@bp.delete("/staff/<int:staff_id>")
@roles_required(*MANAGERS)
def delete_staff(staff_id: int) -> tuple[dict[str, object], int]:
    result = staff_service.delete_staff(staff_id)
    return jsonify({"message": f"Staff member {result['name']} deleted successfully", **result}), 200


def register_routes(app: Flask) -> None:
    from .routes_billing import bp_billing
    from .routes_bookings import bp_bookings
    from .routes_inventory import bp_inventory
    from .routes_job_cards import bp_job_cards

    app.register_blueprint(health_bp)
    app.register_blueprint(bp)
    app.register_blueprint(bp_bookings)
    app.register_blueprint(bp_job_cards)
    app.register_blueprint(bp_inventory)
    app.register_blueprint(bp_billing)
