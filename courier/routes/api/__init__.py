from flask import Blueprint

api_bp = Blueprint("api", __name__, url_prefix="/api")

# Import routes so they register on blueprint
from . import errors, bookings, trips, depots, payments
