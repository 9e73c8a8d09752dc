from flask import Blueprint

servers_bp = Blueprint("servers", __name__)

from . import views
